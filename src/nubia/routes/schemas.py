from datetime import timezone

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate, validates_schema

from nubia.models import CUSTOM_ORDER_STATUSES, ORDER_STATUSES, RETURN_STATUSES
from nubia.utils.validators import ValidationUtils

SHIPPING_METHODS = ("standard", "express")


class NormalizedEmail(fields.String):
    """Email checked and normalised by email-validator (no DNS lookups)."""

    def _deserialize(self, value, attr, data, **kwargs):
        value = super()._deserialize(value, attr, data, **kwargs)
        try:
            return ValidationUtils.normalize_email(value)
        except ValueError:
            raise ValidationError("Not a valid email address.")


class Phone(fields.String):
    def __init__(self, min_digits: int = ValidationUtils.MIN_PHONE_DIGITS, max_digits: int = 20, **kwargs):
        super().__init__(**kwargs)
        self.min_digits = min_digits
        self.max_digits = max_digits

    def _deserialize(self, value, attr, data, **kwargs):
        value = super()._deserialize(value, attr, data, **kwargs).strip()
        digits = ValidationUtils.digits_only(value)
        if not self.min_digits <= len(digits) <= self.max_digits:
            raise ValidationError(f"Phone number must have {self.min_digits} to {self.max_digits} digits.")
        return value


class BaseSchema(Schema):
    class Meta:
        unknown = EXCLUDE


# ---------------------------------------------------------------------- #
# Auth                                                                    #
# ---------------------------------------------------------------------- #

class SignupSchema(BaseSchema):
    email = NormalizedEmail(required=True)
    password = fields.Str(
        required=True,
        load_only=True,
        validate=validate.Length(min=ValidationUtils.MIN_PASSWORD_LENGTH, max=ValidationUtils.MAX_PASSWORD_LENGTH),
    )
    full_name = fields.Str(load_default=None, validate=validate.Length(max=100))
    phone = Phone(load_default=None)


class LoginSchema(BaseSchema):
    email = NormalizedEmail(required=True)
    password = fields.Str(required=True, load_only=True)


class AdminLoginSchema(BaseSchema):
    username = fields.Str(required=True, validate=validate.Length(min=1))
    password = fields.Str(required=True, load_only=True, validate=validate.Length(min=1))


# ---------------------------------------------------------------------- #
# Cart, wishlist, reviews                                                 #
# ---------------------------------------------------------------------- #

class AddCartItemSchema(BaseSchema):
    product_id = fields.Int(required=True, strict=True)
    variant_id = fields.Int(load_default=None, strict=True)
    quantity = fields.Int(required=True, strict=True, validate=validate.Range(min=1, max=99))


class UpdateCartItemSchema(BaseSchema):
    quantity = fields.Int(required=True, strict=True, validate=validate.Range(min=0, max=99))


class WishlistItemSchema(BaseSchema):
    product_id = fields.Int(required=True, strict=True)


class ReviewSchema(BaseSchema):
    product_id = fields.Int(required=True, strict=True)
    rating = fields.Int(required=True, strict=True, validate=validate.Range(min=1, max=5))
    title = fields.Str(load_default=None, validate=validate.Length(max=100))
    comment = fields.Str(load_default=None, validate=validate.Length(max=1000))


# ---------------------------------------------------------------------- #
# Checkout and orders                                                     #
# ---------------------------------------------------------------------- #

class OrderItemSchema(BaseSchema):
    product_id = fields.Int(required=True, strict=True)
    variant_id = fields.Int(load_default=None, strict=True)
    quantity = fields.Int(required=True, strict=True, validate=validate.Range(min=1, max=99))
    size = fields.Str(load_default=None)
    color = fields.Str(load_default=None)


class QuoteSchema(BaseSchema):
    items = fields.List(fields.Nested(OrderItemSchema), required=True, validate=validate.Length(min=1))
    shipping_method = fields.Str(
        load_default="standard", data_key="shippingMethod", validate=validate.OneOf(SHIPPING_METHODS)
    )
    promo_code = fields.Str(load_default=None, data_key="promoCode", validate=validate.Length(min=1, max=50))


class ShippingAddressMixin(Schema):
    first_name = fields.Str(required=True, data_key="firstName", validate=validate.Length(min=1, max=100))
    last_name = fields.Str(required=True, data_key="lastName", validate=validate.Length(min=1, max=100))
    email = NormalizedEmail(required=True)
    phone = Phone(required=True)
    address = fields.Str(required=True, validate=validate.Length(min=1, max=300))
    city = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    zip_code = fields.Str(load_default=None, data_key="zipCode", validate=validate.Length(max=20))
    country = fields.Str(load_default="SN", validate=validate.Length(min=2, max=60))


class CheckoutSchema(QuoteSchema, ShippingAddressMixin):
    payment_method = fields.Str(load_default=None, data_key="paymentMethod", validate=validate.Length(max=50))


class CodOrderSchema(QuoteSchema, ShippingAddressMixin):
    pass


class DeliveryUpdateSchema(BaseSchema):
    status = fields.Str(load_default=None, validate=validate.OneOf(ORDER_STATUSES))
    delivery_duration_days = fields.Int(load_default=None, strict=True, validate=validate.Range(min=1, max=30))
    estimated_delivery_date = fields.AwareDateTime(load_default=None, default_timezone=timezone.utc)
    tracking_number = fields.Str(load_default=None, validate=validate.Length(max=100))
    carrier = fields.Str(load_default=None, validate=validate.Length(max=100))

    @validates_schema
    def require_change(self, data, **kwargs):
        if not any(v is not None for v in data.values()):
            raise ValidationError("Nothing to update.")


# ---------------------------------------------------------------------- #
# Payments                                                                #
# ---------------------------------------------------------------------- #

class PaymentInitSchema(QuoteSchema, ShippingAddressMixin):
    gateway = fields.Str(load_default=None, validate=validate.OneOf(("paydunya", "airwallex", "cod")))
    payment_method = fields.Str(load_default=None, data_key="paymentMethod", validate=validate.Length(max=50))
    locale = fields.Str(load_default="fr", validate=validate.OneOf(("fr", "en")))


# ---------------------------------------------------------------------- #
# Promo codes                                                             #
# ---------------------------------------------------------------------- #

class PromoValidateSchema(BaseSchema):
    code = fields.Str(required=True, validate=validate.Length(min=1, max=50))
    order_amount = fields.Int(required=True, data_key="orderAmount", validate=validate.Range(min=1))


class PromoCodeSchema(BaseSchema):
    code = fields.Str(required=True, validate=validate.Length(min=1, max=50))
    description = fields.Str(allow_none=True)
    discount_type = fields.Str(required=True, validate=validate.OneOf(("percentage", "fixed")))
    discount_value = fields.Int(required=True, validate=validate.Range(min=1))
    min_order_amount = fields.Int(allow_none=True, validate=validate.Range(min=0))
    max_discount = fields.Int(allow_none=True, validate=validate.Range(min=1))
    max_uses = fields.Int(allow_none=True, validate=validate.Range(min=1))
    valid_from = fields.AwareDateTime(allow_none=True, default_timezone=timezone.utc)
    valid_until = fields.AwareDateTime(allow_none=True, default_timezone=timezone.utc)
    is_active = fields.Bool()


# ---------------------------------------------------------------------- #
# Returns, custom orders, contact                                         #
# ---------------------------------------------------------------------- #

class ReturnItemSchema(BaseSchema):
    product_id = fields.Int(required=True, strict=True)
    quantity = fields.Int(required=True, strict=True, validate=validate.Range(min=1))
    reason = fields.Str(load_default=None, validate=validate.Length(max=500))


class ReturnRequestSchema(BaseSchema):
    order_id = fields.Int(required=True, strict=True)
    reason = fields.Str(required=True, validate=validate.Length(min=10, max=1000))
    items = fields.List(fields.Nested(ReturnItemSchema), required=True, validate=validate.Length(min=1))
    comments = fields.Str(load_default=None, validate=validate.Length(max=2000))


class ReturnStatusSchema(BaseSchema):
    status = fields.Str(required=True, validate=validate.OneOf(RETURN_STATUSES))
    admin_notes = fields.Str(allow_none=True, validate=validate.Length(max=2000))


class CustomOrderStatusSchema(BaseSchema):
    status = fields.Str(required=True, validate=validate.OneOf(CUSTOM_ORDER_STATUSES))


class CustomOrderSchema(BaseSchema):
    name = fields.Str(required=True, validate=validate.Length(min=2, max=100))
    email = NormalizedEmail(required=True)
    phone = Phone(required=True, max_digits=20)
    type = fields.Str(required=True)
    measurements = fields.Str(required=True, validate=validate.Length(min=1, max=500))
    preferences = fields.Str(required=True, validate=validate.Length(min=1, max=1000))
    budget = fields.Int(required=True, validate=validate.Range(min=1))
    country = fields.Str(load_default=None, validate=validate.Length(max=60))


class ContactSchema(BaseSchema):
    name = fields.Str(required=True, validate=validate.Length(min=2, max=100))
    email = NormalizedEmail(required=True)
    phone = fields.Str(load_default=None, validate=validate.Length(max=30))
    subject = fields.Str(required=True, validate=validate.Length(min=2, max=200))
    message = fields.Str(required=True, validate=validate.Length(min=5, max=5000))


class NewsletterSchema(BaseSchema):
    email = NormalizedEmail(required=True)
    name = fields.Str(load_default=None, validate=validate.Length(max=100))
    locale = fields.Str(load_default="fr", validate=validate.OneOf(("fr", "en")))


# ---------------------------------------------------------------------- #
# Admin catalog                                                           #
# ---------------------------------------------------------------------- #

class VariantSchema(BaseSchema):
    sku = fields.Str(load_default=None)
    size = fields.Str(load_default=None)
    color = fields.Str(load_default=None)
    stock = fields.Int(load_default=0, strict=True, validate=validate.Range(min=0))


class ProductCreateSchema(BaseSchema):
    name = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    slug = fields.Str(load_default=None, validate=validate.Regexp(ValidationUtils.PATTERNS["slug"]))
    description = fields.Str(load_default=None)
    price = fields.Int(required=True, strict=True, validate=validate.Range(min=0))
    original_price = fields.Int(load_default=None, validate=validate.Range(min=0))
    category = fields.Str(load_default=None)
    image_url = fields.Str(load_default=None)
    images = fields.List(fields.Str(), load_default=list)
    variants = fields.List(fields.Nested(VariantSchema), load_default=list)


class ProductUpdateSchema(BaseSchema):
    name = fields.Str(validate=validate.Length(min=1, max=200))
    description = fields.Str(allow_none=True)
    price = fields.Int(strict=True, validate=validate.Range(min=0))
    original_price = fields.Int(allow_none=True, validate=validate.Range(min=0))
    category = fields.Str(allow_none=True)
    image_url = fields.Str(allow_none=True)
    images = fields.List(fields.Str())
    in_stock = fields.Bool()


class VariantStockSchema(BaseSchema):
    stock = fields.Int(required=True, strict=True, validate=validate.Range(min=0))
