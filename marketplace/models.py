from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
import enum
import uuid

from sqlalchemy.types import String, TypeDecorator
from werkzeug.security import check_password_hash, generate_password_hash

from .extensions import db

CENTS = Decimal('0.01')


def new_id() -> str:
    return str(uuid.uuid4())


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class Money(TypeDecorator):
    """Decimal amounts persisted as fixed two-place strings."""

    impl = String(32)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(to_money(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class UserRole(enum.Enum):
    user = "user"
    seller = "seller"
    admin = "admin"


class OrderStatus(enum.Enum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(UserRole, name="user_role", native_enum=False), default=UserRole.user, nullable=False)
    full_name = db.Column(db.String(255))
    phone_number = db.Column(db.String(50))
    address = db.Column(db.Text)
    bio = db.Column(db.Text)
    profile_image = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def set_password(self, raw: str) -> None:
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    @property
    def role_name(self) -> str:
        return self.role.value if isinstance(self.role, enum.Enum) else self.role


class UserSession(db.Model):
    __tablename__ = 'user_sessions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    session_token = db.Column(db.String(64), unique=True, nullable=False)
    user_agent = db.Column(db.String(255))
    ip_address = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_seen_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    revoked_at = db.Column(db.DateTime)

    user = db.relationship('User', backref=db.backref('sessions', lazy=True))


class Store(db.Model):
    __tablename__ = 'stores'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    store_id = db.Column(db.String(20), unique=True, nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), unique=True, nullable=False)
    name = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text)
    logo = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    owner = db.relationship('User', backref=db.backref('store', uselist=False, lazy=True))
    products = db.relationship(
        'Product',
        back_populates='store',
        lazy=True,
        cascade='all, delete-orphan',
    )


class Product(db.Model):
    __tablename__ = 'products'
    __table_args__ = (
        db.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    store_id = db.Column(db.String(36), db.ForeignKey('stores.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(Money, nullable=False)
    category = db.Column(db.String(120), index=True)
    sku = db.Column(db.String(120))
    stock = db.Column(db.Integer, nullable=False, default=0)
    image = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    store = db.relationship('Store', back_populates='products')


class Order(db.Model):
    __tablename__ = 'orders'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'idempotency_key', name='uq_orders_user_idempotency_key'),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    status = db.Column(
        db.Enum(OrderStatus, name="order_status", native_enum=False),
        default=OrderStatus.pending,
        nullable=False,
    )
    total = db.Column(Money, nullable=False)
    idempotency_key = db.Column(db.String(128))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    buyer = db.relationship('User', backref=db.backref('orders', lazy=True))
    items = db.relationship(
        'OrderItem',
        back_populates='order',
        lazy='selectin',
        cascade='all, delete-orphan',
        order_by='OrderItem.position',
    )


class OrderItem(db.Model):
    __tablename__ = 'order_items'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey('orders.id'), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    # plain column: outlives the product row
    product_id = db.Column(db.String(36), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(Money, nullable=False)
    name = db.Column(db.String(255), nullable=False)

    order = db.relationship('Order', back_populates='items')

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity
