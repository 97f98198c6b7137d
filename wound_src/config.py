"""Configuration for the wound-care LCD compliance engine."""

import os
from pathlib import Path

from dotenv import load_dotenv

from .rules.lcd_criteria import (
    CONSERVATIVE_CARE_MIN_DAYS,
    INFORMATIONAL_PASS_PCT,
    LCD_RESPONSE_REDUCTION_PCT,
    PROGRESS_REDUCTION_PCT,
    LCDPolicy,
)

# Find and load .env file
_env_candidates = [
    Path(__file__).parent.parent / ".env",
    Path(__file__).parent.parent / ".env.template",
]

for env_path in _env_candidates:
    if env_path.exists():
        load_dotenv(env_path)
        break


class Config:
    """Wound-care compliance configuration."""

    # --- LCD Policy Overrides ---
    # Minimum days of documented conservative care
    LCD_CONSERVATIVE_CARE_MIN_DAYS: int = int(
        os.getenv("LCD_CONSERVATIVE_CARE_MIN_DAYS", str(CONSERVATIVE_CARE_MIN_DAYS))
    )
    # Area reduction at 4 weeks that counts as response to conservative care
    LCD_RESPONSE_REDUCTION_PCT: float = float(
        os.getenv("LCD_RESPONSE_REDUCTION_PCT", str(LCD_RESPONSE_REDUCTION_PCT))
    )
    # General wound-reduction progress target by day 28
    LCD_PROGRESS_REDUCTION_PCT: float = float(
        os.getenv("LCD_PROGRESS_REDUCTION_PCT", str(PROGRESS_REDUCTION_PCT))
    )
    # Informational signals required for overall compliance
    LCD_INFORMATIONAL_PASS_PCT: float = float(
        os.getenv("LCD_INFORMATIONAL_PASS_PCT", str(INFORMATIONAL_PASS_PCT))
    )

    # --- Logging ---
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # --- Output ---
    DEFAULT_OUTPUT_DIR: str = os.getenv(
        "DEFAULT_OUTPUT_DIR",
        str(Path.home() / ".wound-lcd" / "reports"),
    )

    @classmethod
    def build_policy(cls) -> LCDPolicy:
        """Build the LCD policy with any configured overrides."""
        return LCDPolicy(
            conservative_care_min_days=cls.LCD_CONSERVATIVE_CARE_MIN_DAYS,
            response_reduction_pct=cls.LCD_RESPONSE_REDUCTION_PCT,
            progress_reduction_pct=cls.LCD_PROGRESS_REDUCTION_PCT,
            informational_pass_pct=cls.LCD_INFORMATIONAL_PASS_PCT,
        )

    @classmethod
    def get_output_dir(cls) -> Path:
        """Get the report output directory, creating it if needed."""
        path = Path(cls.DEFAULT_OUTPUT_DIR)
        path.mkdir(parents=True, exist_ok=True)
        return path


# Module-level convenience instance
config = Config()
