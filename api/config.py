import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    DEBUG: bool = os.getenv("DEBUG", "true").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    CORS_ORIGINS: list[str] = [
        o.strip()
        for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
        if o.strip()
    ]

    # Simulation defaults
    REFERENCE_YEAR: int = int(os.getenv("REFERENCE_YEAR", "2025"))
    MAX_SCENARIO_WORKERS: int = int(os.getenv("MAX_SCENARIO_WORKERS", "4"))

    # Financial defaults (fractions)
    PROJECT_YEARS: int = int(os.getenv("PROJECT_YEARS", "20"))
    DISCOUNT_RATE: float = float(os.getenv("DISCOUNT_RATE", "0.09"))
    FINANCE_RATE: float = float(os.getenv("FINANCE_RATE", "0.09"))
    REINVESTMENT_RATE: float = float(os.getenv("REINVESTMENT_RATE", "0.10"))
    LCOE_DISCOUNT_RATE: float = float(os.getenv("LCOE_DISCOUNT_RATE", "0.09"))
    TARIFF_ESCALATION: float = float(os.getenv("TARIFF_ESCALATION", "0.10"))
    OM_ESCALATION: float = float(os.getenv("OM_ESCALATION", "0.06"))


settings = Settings()
