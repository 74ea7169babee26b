from enum import StrEnum


class SqlDialect(StrEnum):
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"
