"""
User and members-area models.

Users are keyed by email. Buyers are created on first approved purchase;
spaces/cohorts map products to members-area content for enrollment.
"""
import enum
from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from paysettle.models.base import Base, IdMixin, TimestampMixin, enum_type


class UserRole(str, enum.Enum):
    """User role enum."""
    PRODUCER = "producer"
    BUYER = "buyer"


class User(Base, IdMixin, TimestampMixin):
    """User identity (producer or buyer)."""
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        enum_type(UserRole),
        nullable=False,
        default=UserRole.BUYER
    )

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class Space(Base, IdMixin, TimestampMixin):
    """Members-area container owned by a producer."""
    __tablename__ = "spaces"

    producer_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class SpaceProduct(Base, IdMixin, TimestampMixin):
    """Links a product to a space. product_type "principal" grants access."""
    __tablename__ = "space_products"

    space_id: Mapped[str] = mapped_column(String(36), ForeignKey("spaces.id"), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    product_type: Mapped[str] = mapped_column(String(20), nullable=False, default="principal")


class Cohort(Base, IdMixin, TimestampMixin):
    """Class/turma inside a space; new students join the active one."""
    __tablename__ = "cohorts"

    space_id: Mapped[str] = mapped_column(String(36), ForeignKey("spaces.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Enrollment(Base, IdMixin, TimestampMixin):
    """Grants a user access to a product's content."""
    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_enrollments_user_product"),
    )

    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False)
    cohort_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("cohorts.id"), nullable=True)
