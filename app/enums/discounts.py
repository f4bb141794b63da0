from enum import Enum


class RuleType(str, Enum):
    price_rule = "price_rule"
    cart_rule = "cart_rule"
    special_offer = "special_offer"
    gift = "gift"


class RuleStatus(str, Enum):
    active = "active"
    inactive = "inactive"


class DiscountType(str, Enum):
    percentage = "percentage"
    fixed = "fixed"
    fixed_price = "fixed_price"


class ApplyTo(str, Enum):
    all_products = "all_products"
    specific_products = "specific_products"
    categories = "categories"
    tags = "tags"


class SpecialOfferType(str, Enum):
    bogo = "bogo"
    buy_x_get_y = "buy_x_get_y"
    buy_x_for_y = "buy_x_for_y"
    x_for_price_of_y = "x_for_price_of_y"
    event_sale = "event_sale"


class ExclusionType(str, Enum):
    product = "product"
    category = "category"


class RuleItemType(str, Enum):
    product = "product"
    category = "category"
    tag = "tag"
