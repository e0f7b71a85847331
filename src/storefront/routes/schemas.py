from marshmallow import Schema, fields, validate, validates, ValidationError

from storefront.domain.order import OrderStatus, RefundMethod


class AddCartItemSchema(Schema):
    product_id = fields.Int(required=True, strict=True)
    variant_id = fields.Int(load_default=None, allow_none=True, strict=True)
    quantity = fields.Int(load_default=1, strict=True, validate=validate.Range(min=1, max=99))


class UpdateCartItemSchema(Schema):
    # 0 or below removes the line
    quantity = fields.Int(required=True, strict=True, validate=validate.Range(max=99))


class SyncCartItemSchema(Schema):
    product_id = fields.Int(required=True, strict=True)
    variant_id = fields.Int(load_default=None, allow_none=True, strict=True)
    quantity = fields.Int(required=True, strict=True, validate=validate.Range(min=1))


class SyncCartSchema(Schema):
    items = fields.List(fields.Nested(SyncCartItemSchema), required=True)


class QuoteSchema(Schema):
    country_code = fields.Str(required=True, validate=validate.Length(equal=2))


class AddressSchema(Schema):
    label = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    recipient_name = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    phone = fields.Str(load_default=None, allow_none=True)
    type = fields.Str(load_default="home", validate=validate.OneOf(["home", "office", "other"]))
    street = fields.Str(required=True, validate=validate.Length(min=1))
    apartment = fields.Str(load_default=None, allow_none=True)
    city = fields.Str(required=True, validate=validate.Length(min=1))
    state = fields.Str(required=True, validate=validate.Length(min=1))
    zip_code = fields.Str(required=True, validate=validate.Length(min=1, max=20))
    country = fields.Str(required=True, validate=validate.Length(equal=2))
    is_default = fields.Bool(load_default=False)


class ProfileSchema(Schema):
    first_name = fields.Str(allow_none=True, validate=validate.Length(max=100))
    last_name = fields.Str(allow_none=True, validate=validate.Length(max=100))
    phone = fields.Str(allow_none=True, validate=validate.Length(max=30))


class MarketingPrefsSchema(Schema):
    email_newsletter = fields.Bool(required=True)
    sms_notifications = fields.Bool(required=True)


class RoleSchema(Schema):
    role = fields.Str(required=True, validate=validate.OneOf(["customer", "admin"]))


class AdminUserInfoSchema(Schema):
    tags = fields.List(fields.Str())
    notes = fields.Str(allow_none=True)
    phone = fields.Str(allow_none=True)


class CategorySchema(Schema):
    name = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    description = fields.Str(load_default=None, allow_none=True)
    image_url = fields.Str(load_default=None, allow_none=True)
    parent_id = fields.Int(load_default=None, allow_none=True, strict=True)
    sort_order = fields.Int(load_default=None, allow_none=True, strict=True)


class CategoryOrderSchema(Schema):
    id = fields.Int(required=True, strict=True)
    sort_order = fields.Int(required=True, strict=True)


class ReorderCategoriesSchema(Schema):
    items = fields.List(fields.Nested(CategoryOrderSchema), required=True)


class ProductImageSchema(Schema):
    url = fields.Str(required=True)
    alt = fields.Str(load_default=None, allow_none=True)
    is_main = fields.Bool(load_default=False)


class ColorOptionSchema(Schema):
    id = fields.Str(required=True)
    name = fields.Str(required=True)
    hex = fields.Str(load_default=None, allow_none=True)


class DimensionsSchema(Schema):
    length = fields.Float(required=True, validate=validate.Range(min=0))
    width = fields.Float(required=True, validate=validate.Range(min=0))
    height = fields.Float(required=True, validate=validate.Range(min=0))


class ProductSchema(Schema):
    name = fields.Str(required=True, validate=validate.Length(min=1, max=300))
    description = fields.Str(load_default="")
    base_price = fields.Int(required=True, strict=True, validate=validate.Range(min=0))
    compare_at_price = fields.Int(allow_none=True, strict=True, validate=validate.Range(min=0))
    images = fields.List(fields.Nested(ProductImageSchema), load_default=list)
    color_options = fields.List(fields.Nested(ColorOptionSchema), allow_none=True)
    size_options = fields.List(fields.Str(), allow_none=True)
    weight = fields.Int(allow_none=True, strict=True, validate=validate.Range(min=0))
    dimensions = fields.Nested(DimensionsSchema, allow_none=True)
    requires_shipping = fields.Bool()
    shipping_rate_override = fields.Int(allow_none=True, strict=True, validate=validate.Range(min=0))
    is_free_shipping = fields.Bool(allow_none=True)
    is_taxable = fields.Bool(allow_none=True)
    tax_rate_override = fields.Float(allow_none=True, validate=validate.Range(min=0, max=100))
    category_id = fields.Int(allow_none=True, strict=True)
    tags = fields.List(fields.Str(), allow_none=True)
    status = fields.Str(load_default="draft", validate=validate.OneOf(["draft", "active", "archived"]))
    is_featured = fields.Bool(load_default=False)


class VariantSchema(Schema):
    color_id = fields.Str(allow_none=True)
    size = fields.Str(allow_none=True)
    sku = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    stock_count = fields.Int(load_default=0, strict=True, validate=validate.Range(min=0))
    low_stock_threshold = fields.Int(allow_none=True, strict=True, validate=validate.Range(min=0))
    price_adjustment = fields.Int(load_default=0, strict=True)
    weight = fields.Int(allow_none=True, strict=True, validate=validate.Range(min=0))
    dimensions = fields.Nested(DimensionsSchema, allow_none=True)
    image_url = fields.Str(allow_none=True)
    is_default = fields.Bool(load_default=False)


class StockAdjustmentSchema(Schema):
    adjustment = fields.Int(required=True, strict=True)

    @validates("adjustment")
    def validate_adjustment(self, value, **kwargs):
        if value == 0:
            raise ValidationError("Adjustment cannot be zero.")


class ReviewSchema(Schema):
    # 1..5 is checked by ReviewService
    rating = fields.Int(required=True, strict=True)
    title = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=200))
    content = fields.Str(required=True, validate=validate.Length(min=1, max=5000))
    images = fields.List(fields.Str(), load_default=None, allow_none=True)


class WishlistItemSchema(Schema):
    product_id = fields.Int(required=True, strict=True)


class OrderStatusSchema(Schema):
    status = fields.Str(required=True, validate=validate.OneOf(OrderStatus.values()))
    tracking_number = fields.Str(load_default=None, allow_none=True)


class ManualOrderItemSchema(Schema):
    product_id = fields.Int(required=True, strict=True)
    variant_id = fields.Int(load_default=None, allow_none=True, strict=True)
    name = fields.Str(required=True)
    sku = fields.Str(load_default=None, allow_none=True)
    quantity = fields.Int(required=True, strict=True, validate=validate.Range(min=1))
    price = fields.Int(required=True, strict=True, validate=validate.Range(min=0))
    image = fields.Str(load_default=None, allow_none=True)


class ManualOrderSchema(Schema):
    user_id = fields.Int(required=True, strict=True)
    items = fields.List(fields.Nested(ManualOrderItemSchema), required=True, validate=validate.Length(min=1))
    tax = fields.Int(load_default=0, strict=True, validate=validate.Range(min=0))
    shipping = fields.Int(load_default=0, strict=True, validate=validate.Range(min=0))
    shipping_address_id = fields.Int(load_default=None, allow_none=True, strict=True)
    payment_method = fields.Str(load_default=None, allow_none=True)


class ShippingAddressSchema(Schema):
    street = fields.Str(required=True, validate=validate.Length(min=1))
    city = fields.Str(required=True, validate=validate.Length(min=1))
    state = fields.Str(required=True, validate=validate.Length(min=1))
    zip_code = fields.Str(required=True, validate=validate.Length(min=1))
    country = fields.Str(required=True, validate=validate.Length(equal=2))


class CheckoutSessionSchema(Schema):
    shipping_address = fields.Nested(ShippingAddressSchema, required=True)


class ReturnItemSchema(Schema):
    item_id = fields.Str(required=True)
    quantity = fields.Int(required=True, strict=True, validate=validate.Range(min=1))
    reason = fields.Str(required=True)
    condition = fields.Str(load_default=None, allow_none=True)


class ReturnRequestSchema(Schema):
    order_id = fields.Int(required=True, strict=True)
    reason = fields.Str(required=True, validate=validate.Length(min=1))
    items = fields.List(fields.Nested(ReturnItemSchema), required=True, validate=validate.Length(min=1))
    refund_method = fields.Str(required=True, validate=validate.OneOf(RefundMethod.values()))
    images = fields.List(fields.Str(), load_default=None, allow_none=True)


class ReturnStatusSchema(Schema):
    status = fields.Str(required=True)
    admin_notes = fields.Str(load_default=None, allow_none=True)
    rejection_reason = fields.Str(load_default=None, allow_none=True)
    refund_amount = fields.Int(load_default=None, allow_none=True, strict=True, validate=validate.Range(min=0))


class HeroSlideSchema(Schema):
    title = fields.Str(required=True, validate=validate.Length(min=1))
    description = fields.Str(load_default=None, allow_none=True)
    image_url = fields.Str(required=True)
    cta_text = fields.Str(required=True)
    cta_href = fields.Str(required=True)
    sort_order = fields.Int(load_default=None, allow_none=True, strict=True)
    is_active = fields.Bool(load_default=True)
    location = fields.Str(load_default="hero", allow_none=True)


class TaxItemSchema(Schema):
    price = fields.Int(required=True, strict=True, validate=validate.Range(min=0))
    quantity = fields.Int(required=True, strict=True, validate=validate.Range(min=1))
    is_taxable = fields.Bool(load_default=None, allow_none=True)
    tax_rate_override = fields.Float(load_default=None, allow_none=True)


class TaxCalculationSchema(Schema):
    subtotal = fields.Int(required=True, strict=True, validate=validate.Range(min=0))
    shipping = fields.Int(load_default=0, strict=True, validate=validate.Range(min=0))
    country_code = fields.Str(load_default=None, allow_none=True)
    items = fields.List(fields.Nested(TaxItemSchema), load_default=None, allow_none=True)


class ShippingItemSchema(Schema):
    quantity = fields.Int(required=True, strict=True, validate=validate.Range(min=1))
    weight = fields.Float(load_default=0, validate=validate.Range(min=0))
    dimensions = fields.Nested(DimensionsSchema, load_default=None, allow_none=True)
    shipping_rate_override = fields.Int(load_default=None, allow_none=True, strict=True)
    is_free_shipping = fields.Bool(load_default=None, allow_none=True)


class ShippingCalculationSchema(Schema):
    country_code = fields.Str(required=True, validate=validate.Length(equal=2))
    subtotal = fields.Int(required=True, strict=True, validate=validate.Range(min=0))
    items = fields.List(fields.Nested(ShippingItemSchema), load_default=list)
