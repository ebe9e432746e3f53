import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

INSTITUTIONAL_EMAIL_DOMAIN = os.getenv("INSTITUTIONAL_EMAIL_DOMAIN", "correo.um.edu.uy")

EXPIRY_SWEEP_ENABLED = _get_bool(os.getenv("EXPIRY_SWEEP_ENABLED"), default=True)
EXPIRY_SWEEP_INTERVAL_SECONDS = float(os.getenv("EXPIRY_SWEEP_INTERVAL_SECONDS", "120"))
EXPIRY_SWEEP_MAX_RETRIES = int(os.getenv("EXPIRY_SWEEP_MAX_RETRIES", "3"))
EXPIRY_SWEEP_RETRY_BACKOFF_SECONDS = float(os.getenv("EXPIRY_SWEEP_RETRY_BACKOFF_SECONDS", "2.0"))

PAYMENTS_SIMULATED_APPROVE = _get_bool(os.getenv("PAYMENTS_SIMULATED_APPROVE"), default=True)

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if EXPIRY_SWEEP_INTERVAL_SECONDS <= 0:
        raise RuntimeError("EXPIRY_SWEEP_INTERVAL_SECONDS must be positive.")
