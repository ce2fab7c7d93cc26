import databases
import sqlalchemy
from formsapi.config import config

metadata = sqlalchemy.MetaData()


role_table = sqlalchemy.Table(
    "roles",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("name", sqlalchemy.String(64), unique=True, nullable=False),
    sqlalchemy.Column("code", sqlalchemy.String(64), unique=True, nullable=False),
    sqlalchemy.Column("description", sqlalchemy.Text),
    sqlalchemy.Column("active", sqlalchemy.Boolean, default=True, server_default=sqlalchemy.true(), nullable=False),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime, default=sqlalchemy.func.now()),
    sqlalchemy.Column("updated_at", sqlalchemy.DateTime, default=sqlalchemy.func.now(), onupdate=sqlalchemy.func.now()),
)

permission_table = sqlalchemy.Table(
    "permissions",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("name", sqlalchemy.String(128), nullable=False),
    sqlalchemy.Column("slug", sqlalchemy.String(128), unique=True, nullable=False),
    sqlalchemy.Column("description", sqlalchemy.Text),
    sqlalchemy.Column("active", sqlalchemy.Boolean, default=True, server_default=sqlalchemy.true(), nullable=False),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime, default=sqlalchemy.func.now()),
    sqlalchemy.Column("updated_at", sqlalchemy.DateTime, default=sqlalchemy.func.now(), onupdate=sqlalchemy.func.now()),
)

role_permission_table = sqlalchemy.Table(
    "roles_permissions",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("role_id", sqlalchemy.ForeignKey("roles.id"), nullable=False),
    sqlalchemy.Column("permission_id", sqlalchemy.ForeignKey("permissions.id"), nullable=False),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime, default=sqlalchemy.func.now()),
    sqlalchemy.UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
)

user_table = sqlalchemy.Table(
    "users",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("email", sqlalchemy.String(256), unique=True, nullable=False),
    sqlalchemy.Column("password_hash", sqlalchemy.String, nullable=False),
    sqlalchemy.Column("role_id", sqlalchemy.ForeignKey("roles.id"), nullable=True),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime, default=sqlalchemy.func.now()),
    sqlalchemy.Column("updated_at", sqlalchemy.DateTime, default=sqlalchemy.func.now(), onupdate=sqlalchemy.func.now()),
)

form_table = sqlalchemy.Table(
    "forms",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("title", sqlalchemy.String(256), nullable=False),
    sqlalchemy.Column("description", sqlalchemy.Text),
    sqlalchemy.Column("created_by", sqlalchemy.ForeignKey("users.id"), nullable=True),
    sqlalchemy.Column("active", sqlalchemy.Boolean, default=True, server_default=sqlalchemy.true(), nullable=False),
    sqlalchemy.Column("require_login", sqlalchemy.Boolean, default=False, server_default=sqlalchemy.false(), nullable=False),
    sqlalchemy.Column("limit_submissions", sqlalchemy.Boolean, default=False, server_default=sqlalchemy.false(), nullable=False),
    sqlalchemy.Column("max_submissions_per_user", sqlalchemy.Integer),
    sqlalchemy.Column("confirmation_message", sqlalchemy.Text),
    sqlalchemy.Column("email_notifications", sqlalchemy.Boolean, default=False, server_default=sqlalchemy.false(), nullable=False),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime, default=sqlalchemy.func.now()),
    sqlalchemy.Column("updated_at", sqlalchemy.DateTime, default=sqlalchemy.func.now(), onupdate=sqlalchemy.func.now()),
)

formfield_table = sqlalchemy.Table(
    "form_fields",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.String(64), primary_key=True),
    sqlalchemy.Column("form_id", sqlalchemy.ForeignKey("forms.id"), nullable=False, index=True),
    sqlalchemy.Column("type", sqlalchemy.String(32), nullable=False),
    sqlalchemy.Column("label", sqlalchemy.String(256), nullable=False),
    sqlalchemy.Column("placeholder", sqlalchemy.String(256)),
    sqlalchemy.Column("help_text", sqlalchemy.Text),
    sqlalchemy.Column("required", sqlalchemy.Boolean, default=False, server_default=sqlalchemy.false(), nullable=False),
    sqlalchemy.Column("options", sqlalchemy.JSON, default=[]),  # [{label, value}, ...]
    sqlalchemy.Column("validation_rules", sqlalchemy.JSON),  # {min, max, integer, pattern}
    sqlalchemy.Column("conditional_logic", sqlalchemy.JSON),  # {dependsOn, condition, value}
    sqlalchemy.Column("position", sqlalchemy.Integer, default=0, server_default="0", nullable=False),
    sqlalchemy.Column("active", sqlalchemy.Boolean, default=True, server_default=sqlalchemy.true(), nullable=False),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime, default=sqlalchemy.func.now()),
    sqlalchemy.Column("updated_at", sqlalchemy.DateTime, default=sqlalchemy.func.now(), onupdate=sqlalchemy.func.now()),
)

formresponse_table = sqlalchemy.Table(
    "form_responses",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("form_id", sqlalchemy.ForeignKey("forms.id"), nullable=False, index=True),
    sqlalchemy.Column("user_id", sqlalchemy.ForeignKey("users.id"), nullable=True),
    sqlalchemy.Column("completed_at", sqlalchemy.DateTime, nullable=False),
    sqlalchemy.Column("data", sqlalchemy.JSON, nullable=False),  # raw answer map, kept for reference
    sqlalchemy.Column("metadata", sqlalchemy.JSON),  # {user_agent, timestamp}
    sqlalchemy.Column("created_at", sqlalchemy.DateTime, default=sqlalchemy.func.now()),
)

formresponsevalue_table = sqlalchemy.Table(
    "form_response_values",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("response_id", sqlalchemy.ForeignKey("form_responses.id"), nullable=False, index=True),
    sqlalchemy.Column("field_id", sqlalchemy.String(64), nullable=False, index=True),
    sqlalchemy.Column("value", sqlalchemy.Text),
    sqlalchemy.Column("numeric_value", sqlalchemy.Float),
    sqlalchemy.Column("boolean_value", sqlalchemy.Boolean),
)

dashboard_table = sqlalchemy.Table(
    "dashboards",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("title", sqlalchemy.String(256), nullable=False),
    sqlalchemy.Column("description", sqlalchemy.Text),
    sqlalchemy.Column("form_id", sqlalchemy.ForeignKey("forms.id"), nullable=True),
    sqlalchemy.Column("config", sqlalchemy.JSON, default={}),  # {widgets: [{id, type, title, groupBy, aggregation}]}
    sqlalchemy.Column("active", sqlalchemy.Boolean, default=True, server_default=sqlalchemy.true(), nullable=False),
    sqlalchemy.Column("created_by", sqlalchemy.ForeignKey("users.id"), nullable=False),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime, default=sqlalchemy.func.now()),
    sqlalchemy.Column("updated_at", sqlalchemy.DateTime, default=sqlalchemy.func.now(), onupdate=sqlalchemy.func.now()),
)


connect_args = {"check_same_thread": False} if config.DATABASE_URL.startswith("sqlite") else {}
engine = sqlalchemy.create_engine(config.DATABASE_URL, connect_args=connect_args)

metadata.create_all(engine)
database = databases.Database(
    config.DATABASE_URL, force_rollback=config.DB_FORCE_ROLL_BACK
)
