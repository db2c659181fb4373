import enum

# -------------------------------------------------------------- #
# Server Manager Types
# -------------------------------------------------------------- #


class ServerManagerType(enum.Enum):
    """Selects which backend set the constructors build."""

    TESTING = "testing"
    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @classmethod
    def from_env_value(cls, value: str | None) -> "ServerManagerType":
        """Parse an environment value, defaulting to DEVELOPMENT."""
        if not value:
            return cls.DEVELOPMENT
        try:
            return cls(value.strip().lower())
        except ValueError as e:
            raise ValueError(
                f"Unknown server manager type '{value}'. "
                f"Expected one of: {[member.value for member in cls]}"
            ) from e
