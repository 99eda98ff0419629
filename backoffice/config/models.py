# ==============================================================================
# SCHEMA MODELS - Backoffice Configuration Snapshot
# ==============================================================================
# Immutable pydantic models for data sources, sections, actions, fields,
# validation rules and relationships
# ==============================================================================

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class FrozenModel(BaseModel):
    """Base for every schema model; the loaded snapshot is read-only."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


# ==============================================================================
# APPLICATION CONFIG
# ==============================================================================

class ServerConfig(FrozenModel):
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)


class SecurityConfig(FrozenModel):
    enabled: bool = False
    jwt_secret: Optional[str] = None


class AppConfig(FrozenModel):
    """Top-level application file: bind address and security flag."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)

    def public_view(self) -> Dict[str, Any]:
        """Config safe to expose over HTTP (secrets removed)."""
        return {
            "server": self.server.model_dump(),
            "security": {"enabled": self.security.enabled},
        }


# ==============================================================================
# DATA SOURCES
# ==============================================================================

class SqlDialect(str, Enum):
    POSTGRES = "postgres"
    MYSQL = "mysql"
    SQLITE = "sqlite"


class ApiAuthConfig(FrozenModel):
    """Credentials for HTTP backends: ``bearer``, ``basic`` or ``api_key``."""

    auth_type: str = "bearer"
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    header_name: str = "X-API-Key"


class DatabaseSourceConfig(FrozenModel):
    type: Literal["database"] = "database"
    connection_string: str
    db_type: SqlDialect = SqlDialect.POSTGRES


class MongoSourceConfig(FrozenModel):
    type: Literal["mongodb"] = "mongodb"
    connection_string: str
    database: str
    collection: str


class RedisSourceConfig(FrozenModel):
    type: Literal["redis"] = "redis"
    connection_string: str
    key_prefix: Optional[str] = None


class ElasticsearchSourceConfig(FrozenModel):
    type: Literal["elasticsearch"] = "elasticsearch"
    nodes: List[str] = Field(min_length=1)
    index: str
    auth: Optional[ApiAuthConfig] = None


class ApiSourceConfig(FrozenModel):
    type: Literal["api"] = "api"
    base_url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    auth: Optional[ApiAuthConfig] = None
    pagination_style: Literal["query", "range"] = "query"


class GraphQLSourceConfig(FrozenModel):
    type: Literal["graphql"] = "graphql"
    endpoint: str
    headers: Dict[str, str] = Field(default_factory=dict)
    auth: Optional[ApiAuthConfig] = None


class SupabaseSourceConfig(FrozenModel):
    type: Literal["supabase"] = "supabase"
    url: str
    api_key: str
    table: str


class S3SourceConfig(FrozenModel):
    type: Literal["s3"] = "s3"
    bucket: str
    region: str = "us-east-1"
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    prefix: Optional[str] = None
    endpoint_url: Optional[str] = None


class KafkaSourceConfig(FrozenModel):
    type: Literal["kafka"] = "kafka"
    brokers: List[str] = Field(min_length=1)
    topic: str
    group_id: Optional[str] = None


class WebSocketSourceConfig(FrozenModel):
    type: Literal["websocket"] = "websocket"
    url: str
    reconnect: bool = True
    heartbeat_interval: Optional[float] = None


DataSourceConfig = Annotated[
    Union[
        DatabaseSourceConfig,
        MongoSourceConfig,
        RedisSourceConfig,
        ElasticsearchSourceConfig,
        ApiSourceConfig,
        GraphQLSourceConfig,
        SupabaseSourceConfig,
        S3SourceConfig,
        KafkaSourceConfig,
        WebSocketSourceConfig,
    ],
    Field(discriminator="type"),
]


# ==============================================================================
# VALIDATION RULES
# ==============================================================================

class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notequals"
    GREATER_THAN = "greaterthan"
    LESS_THAN = "lessthan"
    GREATER_THAN_OR_EQUAL = "greaterthanorequal"
    LESS_THAN_OR_EQUAL = "lessthanorequal"
    CONTAINS = "contains"
    NOT_CONTAINS = "notcontains"
    IN = "in"
    NOT_IN = "notin"


class ValidationCondition(FrozenModel):
    """Gate a rule on another field of the same record."""

    field: str
    operator: ConditionOperator
    value: Any = None

    @field_validator("operator", mode="before")
    @classmethod
    def normalize_operator(cls, v: Any) -> Any:
        # Accept not_equals, NotEquals, greater-than ...
        if isinstance(v, str):
            return v.replace("_", "").replace("-", "").lower()
        return v


class RequiredRule(FrozenModel):
    type: Literal["required"] = "required"
    value: bool = True


class MinLengthRule(FrozenModel):
    type: Literal["min_length"] = "min_length"
    value: int = Field(ge=0)


class MaxLengthRule(FrozenModel):
    type: Literal["max_length"] = "max_length"
    value: int = Field(ge=0)


class PatternRule(FrozenModel):
    type: Literal["pattern"] = "pattern"
    regex: str


class MinRule(FrozenModel):
    type: Literal["min"] = "min"
    value: float


class MaxRule(FrozenModel):
    type: Literal["max"] = "max"
    value: float


class EmailRule(FrozenModel):
    type: Literal["email"] = "email"


class UrlRule(FrozenModel):
    type: Literal["url"] = "url"


class PhoneRule(FrozenModel):
    type: Literal["phone"] = "phone"


class CustomFunctionRule(FrozenModel):
    type: Literal["custom_function"] = "custom_function"
    function_name: str


class DependsOnRule(FrozenModel):
    type: Literal["depends_on"] = "depends_on"
    field: str
    expected_value: Any = None


class UniqueInRule(FrozenModel):
    type: Literal["unique_in"] = "unique_in"
    field_list: List[str] = Field(default_factory=list)


class MatchFieldRule(FrozenModel):
    type: Literal["match_field"] = "match_field"
    field: str


class CreditCardRule(FrozenModel):
    type: Literal["credit_card"] = "credit_card"


class IPv4Rule(FrozenModel):
    type: Literal["ipv4"] = "ipv4"


class IPv6Rule(FrozenModel):
    type: Literal["ipv6"] = "ipv6"


class UuidRule(FrozenModel):
    type: Literal["uuid"] = "uuid"


class DateRangeRule(FrozenModel):
    type: Literal["date_range"] = "date_range"
    start_field: str
    end_field: str


class FileSizeRule(FrozenModel):
    type: Literal["file_size"] = "file_size"
    max_size_mb: float


class FileTypeRule(FrozenModel):
    type: Literal["file_type"] = "file_type"
    allowed_types: List[str] = Field(default_factory=list)


class StrongPasswordRule(FrozenModel):
    type: Literal["strong_password"] = "strong_password"
    min_length: int = 8
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_number: bool = True
    require_special: bool = True


class AlphaNumericRule(FrozenModel):
    type: Literal["alpha_numeric"] = "alpha_numeric"


class LuhnRule(FrozenModel):
    type: Literal["luhn"] = "luhn"


class MacAddressRule(FrozenModel):
    type: Literal["mac_address"] = "mac_address"


class IsbnRule(FrozenModel):
    type: Literal["isbn"] = "isbn"


class IbanRule(FrozenModel):
    type: Literal["iban"] = "iban"


class SsnRule(FrozenModel):
    type: Literal["ssn"] = "ssn"


class PostalCodeRule(FrozenModel):
    type: Literal["postal_code"] = "postal_code"
    country_code: str


class Base64Rule(FrozenModel):
    type: Literal["base64"] = "base64"


class JsonRule(FrozenModel):
    type: Literal["json"] = "json"


class HexRule(FrozenModel):
    type: Literal["hex"] = "hex"


class AsciiRule(FrozenModel):
    type: Literal["ascii"] = "ascii"


class NotEmptyRule(FrozenModel):
    type: Literal["not_empty"] = "not_empty"


class FutureRule(FrozenModel):
    type: Literal["future"] = "future"


class PastRule(FrozenModel):
    type: Literal["past"] = "past"


class MinAgeRule(FrozenModel):
    type: Literal["min_age"] = "min_age"
    years: int = Field(ge=0)


class MaxAgeRule(FrozenModel):
    type: Literal["max_age"] = "max_age"
    years: int = Field(ge=0)


class BetweenRule(FrozenModel):
    type: Literal["between"] = "between"
    min: float
    max: float


RuleType = Annotated[
    Union[
        RequiredRule,
        MinLengthRule,
        MaxLengthRule,
        PatternRule,
        MinRule,
        MaxRule,
        EmailRule,
        UrlRule,
        PhoneRule,
        CustomFunctionRule,
        DependsOnRule,
        UniqueInRule,
        MatchFieldRule,
        CreditCardRule,
        IPv4Rule,
        IPv6Rule,
        UuidRule,
        DateRangeRule,
        FileSizeRule,
        FileTypeRule,
        StrongPasswordRule,
        AlphaNumericRule,
        LuhnRule,
        MacAddressRule,
        IsbnRule,
        IbanRule,
        SsnRule,
        PostalCodeRule,
        Base64Rule,
        JsonRule,
        HexRule,
        AsciiRule,
        NotEmptyRule,
        FutureRule,
        PastRule,
        MinAgeRule,
        MaxAgeRule,
        BetweenRule,
    ],
    Field(discriminator="type"),
]


class ValidationRule(FrozenModel):
    """A rule kind, an optional custom message and an optional gate."""

    rule_type: RuleType
    message: Optional[str] = None
    condition: Optional[ValidationCondition] = None


# ==============================================================================
# FIELDS
# ==============================================================================

class FieldKind(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    EMAIL = "email"
    PASSWORD = "password"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    BOOLEAN = "boolean"
    SELECT = "select"
    TEXTAREA = "textarea"
    FILE = "file"
    URL = "url"
    PHONE = "phone"
    CURRENCY = "currency"
    COLOR = "color"
    RANGE = "range"
    RATING = "rating"
    TAGS = "tags"
    IMAGE = "image"
    JSON = "json"
    SLUG = "slug"
    WEEKDAY = "weekday"
    MONTH = "month"
    GEOLOCATION = "geolocation"
    DURATION = "duration"
    PERCENTAGE = "percentage"
    CODE = "code"
    MARKDOWN = "markdown"
    RICHTEXT = "richtext"
    IPADDRESS = "ipaddress"
    MULTICHECKBOX = "multicheckbox"
    RADIO = "radio"
    AUTOCOMPLETE = "autocomplete"
    SIGNATURE = "signature"
    VIDEO = "video"
    AUDIO = "audio"
    BARCODE = "barcode"
    DATETIMERANGE = "datetimerange"
    SLIDER = "slider"
    COLORPALETTE = "colorpalette"


class FieldConfig(FrozenModel):
    """
    A single field of an action.

    ``config`` holds the kind-specific settings (select options, slider
    bounds, accepted file types ...) and is passed through to the client
    untouched.
    """

    id: str
    name: str
    field_type: FieldKind = FieldKind.TEXT
    config: Dict[str, Any] = Field(default_factory=dict)
    required: bool = False
    editable: bool = True
    visible: bool = True
    default_value: Any = None
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    validations: List[ValidationRule] = Field(default_factory=list)
    relationship_id: Optional[str] = None


# ==============================================================================
# ACTIONS
# ==============================================================================

class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class FormMode(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ListSettings(FrozenModel):
    page_size: int = Field(default=20, ge=1, le=1000)
    enable_pagination: bool = True
    filters: List[str] = Field(default_factory=list)
    sortable_fields: List[str] = Field(default_factory=list)
    default_sort_field: Optional[str] = None
    default_sort_order: SortOrder = SortOrder.ASC


class FormSettings(FrozenModel):
    submit_button_text: str = "Submit"
    cancel_button_text: str = "Cancel"
    form_mode: FormMode = FormMode.CREATE
    redirect_on_success: Optional[str] = None
    show_success_message: bool = True


class ActionBase(FrozenModel):
    id: str
    name: str
    data_source: str
    query: Optional[str] = None
    endpoint: Optional[str] = None
    required_scopes: List[str] = Field(default_factory=list)
    fields: List[FieldConfig] = Field(default_factory=list)

    @property
    def query_text(self) -> str:
        """The raw query, falling back to the endpoint path."""
        return self.query or self.endpoint or ""


class ListAction(ActionBase):
    type: Literal["list"] = "list"
    config: ListSettings = Field(default_factory=ListSettings)


class FormAction(ActionBase):
    type: Literal["form"] = "form"
    config: FormSettings = Field(default_factory=FormSettings)


class ViewAction(ActionBase):
    type: Literal["view"] = "view"
    config: Dict[str, Any] = Field(default_factory=dict)


class CustomAction(ActionBase):
    type: Literal["custom"] = "custom"
    config: Dict[str, Any] = Field(default_factory=dict)


ActionConfig = Annotated[
    Union[ListAction, FormAction, ViewAction, CustomAction],
    Field(discriminator="type"),
]


# ==============================================================================
# SECTIONS
# ==============================================================================

class AuditConfig(FrozenModel):
    track_created: bool = True
    track_updated: bool = True
    track_deleted: bool = True
    retention_days: Optional[int] = Field(default=None, ge=1)


class SectionConfig(FrozenModel):
    id: str
    name: str
    icon: Optional[str] = None
    table: Optional[str] = None
    actions: List[ActionConfig] = Field(default_factory=list)
    audit: Optional[AuditConfig] = None

    @property
    def storage_name(self) -> str:
        """Table / collection name used in rendered queries."""
        return self.table or self.id

    def get_action(self, action_id: str) -> Optional[ActionBase]:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None


# ==============================================================================
# RELATIONSHIPS
# ==============================================================================

class RelationshipKind(str, Enum):
    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    MANY_TO_MANY = "many_to_many"


class JunctionConfig(FrozenModel):
    """Join collection of a many-to-many relationship."""

    table: str
    from_field: str
    to_field: str
    data_source: Optional[str] = None


class RelationshipConfig(FrozenModel):
    id: str
    from_section: str
    from_field: str
    to_section: str
    to_field: str = "id"
    relationship_type: RelationshipKind
    cascade_delete: bool = False
    junction: Optional[JunctionConfig] = None

    @model_validator(mode="after")
    def check_junction(self) -> "RelationshipConfig":
        if self.relationship_type == RelationshipKind.MANY_TO_MANY and self.junction is None:
            raise ValueError(
                f"Relationship '{self.id}' is many_to_many but has no junction"
            )
        return self


# ==============================================================================
# BACKOFFICE
# ==============================================================================

class BackofficeConfig(FrozenModel):
    """
    One backoffice: its data sources, sections and relationships.

    A section's data source is the data source of its first action.
    """

    id: str
    name: str
    description: Optional[str] = None
    data_sources: Dict[str, DataSourceConfig] = Field(default_factory=dict)
    sections: List[SectionConfig] = Field(default_factory=list)
    relationships: List[RelationshipConfig] = Field(default_factory=list)

    def get_section(self, section_id: str) -> Optional[SectionConfig]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def section_data_source(self, section_id: str) -> Optional[str]:
        section = self.get_section(section_id)
        if section is None or not section.actions:
            return None
        return section.actions[0].data_source

    def get_relationship(self, relationship_id: str) -> Optional[RelationshipConfig]:
        for relationship in self.relationships:
            if relationship.id == relationship_id:
                return relationship
        return None

    def relationships_from(self, section_id: str) -> List[RelationshipConfig]:
        return [r for r in self.relationships if r.from_section == section_id]

    def relationships_to(self, section_id: str) -> List[RelationshipConfig]:
        return [r for r in self.relationships if r.to_section == section_id]

    def public_view(self) -> Dict[str, Any]:
        """Schema safe to expose over HTTP: data sources show only their type."""
        view = self.model_dump(mode="json", exclude={"data_sources"})
        view["data_sources"] = {
            name: {"type": source.type} for name, source in self.data_sources.items()
        }
        return view
