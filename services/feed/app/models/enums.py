import enum

from sqlalchemy.dialects.postgresql import ENUM as PgEnum


class PostVisibility(str, enum.Enum):
    PUBLIC = "public"
    FOLLOWERS = "followers"   # Visible to accounts in the author's follow graph
    PRIVATE = "private"       # Author only


# SQLAlchemy PgEnum instance (reuse across models to avoid duplicate type creation)
post_visibility_enum = PgEnum(
    PostVisibility,
    name="post_visibility",
    create_type=True,
    values_callable=lambda e: [m.value for m in e],
)
