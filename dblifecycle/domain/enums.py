from __future__ import annotations

from enum import Enum

from dblifecycle.core.errors import InvalidArgumentError


class State(str, Enum):
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


class Engine(str, Enum):
    MYSQL = "MYSQL"
    POSTGRES = "POSTGRES"
    TIDB = "TIDB"
    SNOWFLAKE = "SNOWFLAKE"
    CLICKHOUSE = "CLICKHOUSE"
    MONGODB = "MONGODB"
    SQLITE = "SQLITE"
    REDIS = "REDIS"
    ORACLE = "ORACLE"
    SPANNER = "SPANNER"
    MSSQL = "MSSQL"
    REDSHIFT = "REDSHIFT"
    MARIADB = "MARIADB"
    OCEANBASE = "OCEANBASE"


class DataSourceType(str, Enum):
    ADMIN = "ADMIN"
    RW = "RW"
    RO = "RO"


class EnvironmentTier(str, Enum):
    PROTECTED = "PROTECTED"
    UNPROTECTED = "UNPROTECTED"


class PolicyType(str, Enum):
    DEPLOYMENT_APPROVAL = "DEPLOYMENT_APPROVAL"
    BACKUP_PLAN = "BACKUP_PLAN"
    SENSITIVE_DATA = "SENSITIVE_DATA"
    ACCESS_CONTROL = "ACCESS_CONTROL"


class RiskLevel(str, Enum):
    DEFAULT = "DEFAULT"
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"

    def to_int(self) -> int:
        return _RISK_LEVEL_VALUES[self]

    @classmethod
    def from_int(cls, value: int) -> RiskLevel:
        for level, number in _RISK_LEVEL_VALUES.items():
            if number == value:
                return level
        raise InvalidArgumentError(f"Unknown risk level value: {value}")

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.to_int() < other.to_int()

    def __le__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.to_int() <= other.to_int()

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.to_int() > other.to_int()

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.to_int() >= other.to_int()


# Numeric values are part of the wire contract.
_RISK_LEVEL_VALUES: dict[RiskLevel, int] = {
    RiskLevel.DEFAULT: 0,
    RiskLevel.LOW: 100,
    RiskLevel.MODERATE: 200,
    RiskLevel.HIGH: 300,
}


class RiskSource(str, Enum):
    DDL = "DDL"
    DML = "DML"
    CREATE_DATABASE = "CREATE_DATABASE"
    DATA_EXPORT = "DATA_EXPORT"
    REQUEST_QUERY = "REQUEST_QUERY"
    REQUEST_EXPORT = "REQUEST_EXPORT"


class SettingName(str, Enum):
    WORKSPACE_APPROVAL = "bb.workspace.approval"
    WORKSPACE_PROFILE = "bb.workspace.profile"
    WORKSPACE_EXTERNAL_APPROVAL = "bb.workspace.approval.external"
    DATA_CLASSIFICATION = "bb.workspace.data-classification"


class UserType(str, Enum):
    USER = "USER"
    SYSTEM_BOT = "SYSTEM_BOT"
    SERVICE_ACCOUNT = "SERVICE_ACCOUNT"


class GroupMemberRole(str, Enum):
    OWNER = "OWNER"
    MEMBER = "MEMBER"


class RoleType(str, Enum):
    BUILT_IN = "BUILT_IN"
    CUSTOM = "CUSTOM"


class DatabaseGroupView(str, Enum):
    BASIC = "BASIC"
    FULL = "FULL"


class SQLReviewRuleLevel(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    DISABLED = "DISABLED"


class ApprovalStrategy(str, Enum):
    AUTOMATIC = "AUTOMATIC"
    MANUAL = "MANUAL"


class MaskingLevel(str, Enum):
    NONE = "NONE"
    PARTIAL = "PARTIAL"
    FULL = "FULL"


def parse_engine(value: str | Engine) -> Engine:
    # Reject engines outside the supported set at input boundaries.
    try:
        return Engine(str(value.value if isinstance(value, Engine) else value).upper())
    except ValueError as exc:
        raise InvalidArgumentError(f"Unsupported engine: {value}") from exc


def parse_setting_name(value: str | SettingName) -> SettingName:
    try:
        return SettingName(value)
    except ValueError as exc:
        raise InvalidArgumentError(f"Unknown setting name: {value}") from exc
