"""create discount rule tables

Revision ID: 3a7c91d2e4b6
Revises: 
Create Date: 2026-10-19 09:14:02.118305

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3a7c91d2e4b6'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        "products",
        sa.Column("product_id", sa.String(), primary_key=True),
        sa.Column("parent_id", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("category_ids", sa.JSON(), nullable=True),
        sa.Column("tag_ids", sa.JSON(), nullable=True),
        sa.Column("regular_price", sa.Numeric(19, 4), nullable=False),
        sa.Column("sale_price", sa.Numeric(19, 4), nullable=True),
        sa.Column("currency", sa.String(), nullable=True),
        sa.Column("in_stock", sa.Boolean(), nullable=True),
        sa.Column("exclude_from_discounts", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_products_product_id", "products", ["product_id"])
    op.create_index("ix_products_parent_id", "products", ["parent_id"])

    op.create_table(
        "discount_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("rule_type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("discount_type", sa.String(), nullable=False),
        sa.Column("discount_value", sa.Numeric(19, 4), nullable=True),
        sa.Column("apply_to", sa.String(), nullable=False),
        sa.Column("conditions", sa.JSON(), nullable=True),
        sa.Column("schedule_from", sa.DateTime(), nullable=True),
        sa.Column("schedule_to", sa.DateTime(), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("exclusive", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("show_badge", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("badge_text", sa.String(), nullable=True),
        sa.Column("special_offer_type", sa.String(), nullable=True),
        sa.Column("event_type", sa.String(), nullable=True),
        sa.Column("custom_event_name", sa.String(), nullable=True),
        sa.Column("event_discount_type", sa.String(), nullable=True),
        sa.Column("event_discount_value", sa.Numeric(19, 4), nullable=True),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_discount_rules_id", "discount_rules", ["id"])
    op.create_index("ix_discount_rules_rule_type", "discount_rules", ["rule_type"])
    op.create_index("ix_discount_rules_status", "discount_rules", ["status"])
    op.create_index("ix_discount_rules_priority", "discount_rules", ["priority"])

    op.create_table(
        "discount_quantity_ranges",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("rule_id", sa.Integer(), sa.ForeignKey("discount_rules.id"), nullable=False),
        sa.Column("min_quantity", sa.Integer(), nullable=False),
        sa.Column("max_quantity", sa.Integer(), nullable=True),
        sa.Column("discount_type", sa.String(), nullable=False),
        sa.Column("discount_value", sa.Numeric(19, 4), nullable=False),
    )
    op.create_index("ix_discount_quantity_ranges_rule_id", "discount_quantity_ranges", ["rule_id"])

    op.create_table(
        "discount_rule_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("rule_id", sa.Integer(), sa.ForeignKey("discount_rules.id"), nullable=False),
        sa.Column("item_type", sa.String(), nullable=False),
        sa.Column("item_id", sa.String(), nullable=False),
    )
    op.create_index("ix_discount_rule_items_rule_id", "discount_rule_items", ["rule_id"])
    op.create_index("ix_discount_rule_items_item_type", "discount_rule_items", ["item_type"])
    op.create_index("ix_discount_rule_items_item_id", "discount_rule_items", ["item_id"])

    op.create_table(
        "discount_exclusions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("rule_id", sa.Integer(), sa.ForeignKey("discount_rules.id"), nullable=False),
        sa.Column("exclusion_type", sa.String(), nullable=False),
        sa.Column("exclusion_id", sa.String(), nullable=False),
    )
    op.create_index("ix_discount_exclusions_rule_id", "discount_exclusions", ["rule_id"])

    op.create_table(
        "discount_gift_products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("rule_id", sa.Integer(), sa.ForeignKey("discount_rules.id"), nullable=False),
        sa.Column("product_id", sa.String(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("discount_type", sa.String(), nullable=False, server_default="percentage"),
        sa.Column("discount_value", sa.Numeric(19, 4), nullable=False, server_default="100"),
    )
    op.create_index("ix_discount_gift_products_rule_id", "discount_gift_products", ["rule_id"])

    op.create_table(
        "discount_rule_usage",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("rule_id", sa.Integer(), sa.ForeignKey("discount_rules.id"), nullable=False),
        sa.Column("order_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("discount_amount", sa.Numeric(19, 4), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("rule_id", "order_id", name="uq_rule_usage_rule_order"),
    )
    op.create_index("ix_discount_rule_usage_rule_id", "discount_rule_usage", ["rule_id"])
    op.create_index("ix_discount_rule_usage_order_id", "discount_rule_usage", ["order_id"])
    op.create_index("ix_discount_rule_usage_user_id", "discount_rule_usage", ["user_id"])


def downgrade():
    op.drop_table("discount_rule_usage")
    op.drop_table("discount_gift_products")
    op.drop_table("discount_exclusions")
    op.drop_table("discount_rule_items")
    op.drop_table("discount_quantity_ranges")
    op.drop_table("discount_rules")
    op.drop_table("products")
