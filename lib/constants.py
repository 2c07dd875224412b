HOURS_IN_DAY: int = 24
MINUTES_IN_HOUR: int = 60
DAYS_IN_YEAR: int = 365
HOURS_IN_YEAR: int = HOURS_IN_DAY * DAYS_IN_YEAR  # 8760, non-leap reference year
MONTHS_IN_YEAR: int = 12
DAYS_PER_BILLING_MONTH: int = 30  # monthly kWh -> daily kWh

G_STC_WM2: float = 1000.0  # Standard Test Condition irradiance
DEFAULT_POWER_FACTOR: float = 0.9
ENERGY_BALANCE_TOLERANCE: float = 1e-6
