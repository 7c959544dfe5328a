"""Create return credit tables

Revision ID: create_return_credit_tables
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'create_return_credit_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BigIntPK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _money(name: str, nullable: bool = False, comment: str = None) -> sa.Column:
    return sa.Column(name, sa.Numeric(18, 2), nullable=nullable, comment=comment)


def upgrade() -> None:
    """创建钱包、成本分摊、月度汇总、退货决策与额度配置表"""

    op.create_table('wallets',
        sa.Column('id', BigIntPK, autoincrement=True, nullable=False, comment='钱包ID'),
        sa.Column('user_id', sa.String(length=64), nullable=False, comment='用户ID'),
        _money('balance', comment='当前余额'),
        _money('total_credits_earned', comment='累计获得额度'),
        _money('total_spent', comment='累计消费'),
        sa.Column('is_active', sa.Boolean(), nullable=False, comment='是否启用'),
        sa.Column('version', sa.Integer(), nullable=False, comment='版本号'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )

    op.create_table('wallet_transactions',
        sa.Column('id', BigIntPK, autoincrement=True, nullable=False, comment='流水ID'),
        sa.Column('transaction_id', sa.String(length=64), nullable=False, comment='交易号（幂等键）'),
        sa.Column('wallet_id', BigIntPK, nullable=False, comment='钱包ID'),
        sa.Column('user_id', sa.String(length=64), nullable=False, comment='用户ID'),
        sa.Column('transaction_type', sa.String(length=30), nullable=False, comment='交易类型'),
        _money('amount', comment='交易金额（正数入账，负数扣款）'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='状态：pending/completed/failed/cancelled'),
        _money('balance_before', nullable=True, comment='交易前余额'),
        _money('balance_after', nullable=True, comment='交易后余额'),
        sa.Column('description', sa.Text(), nullable=True, comment='描述'),
        sa.Column('details', JSONType, nullable=False, comment='交易详情'),
        sa.Column('order_id', sa.String(length=64), nullable=True, comment='订单号'),
        sa.Column('return_id', sa.String(length=64), nullable=True, comment='退货单号'),
        sa.Column('ngo_id', sa.String(length=64), nullable=True, comment='NGO ID'),
        sa.Column('reference_id', sa.String(length=64), nullable=True, comment='外部参考号'),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='失败原因'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='创建时间'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True, comment='完成时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='更新时间'),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id')
    )
    op.create_index('idx_wallet_tx_user_time', 'wallet_transactions', ['user_id', 'created_at'])
    op.create_index('idx_wallet_tx_status_time', 'wallet_transactions', ['status', 'created_at'])
    op.create_index('idx_wallet_tx_type_time', 'wallet_transactions', ['transaction_type', 'created_at'])

    op.create_table('cost_sharing_records',
        sa.Column('id', BigIntPK, autoincrement=True, nullable=False, comment='记录ID'),
        sa.Column('transaction_id', sa.String(length=64), nullable=False, comment='钱包交易号'),
        sa.Column('user_id', sa.String(length=64), nullable=False, comment='买家用户ID'),
        sa.Column('order_id', sa.String(length=64), nullable=False, comment='订单号'),
        sa.Column('return_id', sa.String(length=64), nullable=True, comment='退货单号'),
        sa.Column('ngo_id', sa.String(length=64), nullable=True, comment='NGO ID'),
        sa.Column('seller_id', sa.String(length=64), nullable=False, comment='卖家ID'),
        _money('buyer_credit_amount', comment='买家获得额度'),
        _money('total_avoided_costs', comment='避免的传统退货成本合计'),
        _money('seller_cost_amount', comment='卖家承担金额'),
        _money('platform_cost_amount', comment='平台承担金额'),
        sa.Column('seller_cost_percentage', sa.Numeric(5, 2), nullable=False, comment='卖家分摊比例'),
        sa.Column('platform_cost_percentage', sa.Numeric(5, 2), nullable=False, comment='平台分摊比例'),
        _money('traditional_return_cost', comment='传统退货成本'),
        _money('seller_savings', comment='卖家节省金额'),
        sa.Column('seller_savings_percentage', sa.Numeric(7, 2), nullable=False, comment='卖家节省比例'),
        sa.Column('product_id', sa.String(length=64), nullable=True, comment='商品ID'),
        _money('product_price', comment='商品价格'),
        sa.Column('product_category', sa.String(length=100), nullable=False, comment='商品类目'),
        sa.Column('calculation_metadata', JSONType, nullable=False, comment='计算明细与配置快照'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='状态'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False, comment='处理时间'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='创建时间'),
        sa.ForeignKeyConstraint(['transaction_id'], ['wallet_transactions.transaction_id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id')
    )
    op.create_index('idx_cost_sharing_seller_time', 'cost_sharing_records', ['seller_id', 'processed_at'])
    op.create_index('idx_cost_sharing_user', 'cost_sharing_records', ['user_id'])
    op.create_index('idx_cost_sharing_status_time', 'cost_sharing_records', ['status', 'processed_at'])

    op.create_table('monthly_financial_summaries',
        sa.Column('id', BigIntPK, autoincrement=True, nullable=False),
        sa.Column('month_key', sa.String(length=7), nullable=False, comment='月份 YYYY-MM'),
        sa.Column('total_transactions', sa.Integer(), nullable=False, comment='交易数'),
        _money('total_credits_issued', comment='发放额度合计'),
        _money('total_avoided_costs', comment='避免成本合计'),
        _money('total_seller_costs', comment='卖家承担合计'),
        _money('total_platform_costs', comment='平台承担合计'),
        _money('total_seller_savings', comment='卖家节省合计'),
        sa.Column('average_credit_amount', sa.Numeric(18, 4), nullable=False, comment='平均额度'),
        sa.Column('average_seller_savings', sa.Numeric(18, 4), nullable=False, comment='平均卖家节省'),
        sa.Column('cost_efficiency_ratio', sa.Numeric(10, 4), nullable=False, comment='额度 / (卖家+平台成本)'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('month_key', name='uq_monthly_summary_month')
    )

    op.create_table('monthly_category_summaries',
        sa.Column('id', BigIntPK, autoincrement=True, nullable=False),
        sa.Column('month_key', sa.String(length=7), nullable=False, comment='月份 YYYY-MM'),
        sa.Column('category', sa.String(length=100), nullable=False, comment='商品类目'),
        sa.Column('transactions', sa.Integer(), nullable=False),
        _money('total_credits'),
        _money('total_avoided_costs'),
        _money('total_seller_costs'),
        _money('total_platform_costs'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('month_key', 'category', name='uq_monthly_category')
    )

    op.create_table('return_decisions',
        sa.Column('id', BigIntPK, autoincrement=True, nullable=False),
        sa.Column('decision_id', sa.String(length=64), nullable=False, comment='决策号 DEC_...'),
        sa.Column('order_id', sa.String(length=64), nullable=False, comment='订单号'),
        sa.Column('order_item_id', sa.String(length=64), nullable=False, comment='订单行ID'),
        sa.Column('user_id', sa.String(length=64), nullable=False, comment='用户ID'),
        sa.Column('product_id', sa.String(length=64), nullable=True, comment='商品ID'),
        sa.Column('seller_id', sa.String(length=64), nullable=True, comment='卖家ID'),
        sa.Column('return_reason', sa.Text(), nullable=True, comment='退货原因'),
        sa.Column('item_condition', sa.String(length=20), nullable=False, comment='商品状态'),
        _money('item_value', comment='商品价格'),
        sa.Column('pathway', sa.String(length=20), nullable=False, comment='决策路径'),
        sa.Column('confidence', sa.Numeric(4, 2), nullable=False, comment='置信度'),
        sa.Column('decision_factors', JSONType, nullable=False, comment='决策因子'),
        sa.Column('decision_payload', JSONType, nullable=False, comment='完整决策结果'),
        _money('estimated_credit', nullable=True, comment='预估额度'),
        _money('estimated_resale_value', nullable=True, comment='预估转售价值'),
        _money('processing_cost_estimate', nullable=True, comment='预估处理成本'),
        _money('flash_sale_price', nullable=True, comment='闪购价'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='状态：evaluated/choice_recorded/completed'),
        sa.Column('user_choice', sa.String(length=30), nullable=True, comment='用户选择'),
        sa.Column('final_outcome', sa.String(length=30), nullable=True, comment='最终结果'),
        sa.Column('transaction_id', sa.String(length=64), nullable=True, comment='关联钱包交易号'),
        _money('revenue_impact', nullable=True, comment='收入影响'),
        _money('cost_savings', nullable=True, comment='节省成本'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('user_choice_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('decision_id')
    )
    op.create_index('idx_return_decision_user', 'return_decisions', ['user_id', 'created_at'])
    op.create_index('idx_return_decision_pathway_time', 'return_decisions', ['pathway', 'created_at'])

    op.create_table('credit_settings',
        sa.Column('id', BigIntPK, autoincrement=True, nullable=False),
        sa.Column('setting_key', sa.String(length=50), nullable=False, comment='配置键'),
        sa.Column('setting_value', JSONType, nullable=False, comment='配置值（与默认值合并）'),
        sa.Column('updated_by', sa.String(length=64), nullable=True, comment='最后修改人'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('setting_key')
    )


def downgrade() -> None:
    """删除全部表"""
    op.drop_table('credit_settings')
    op.drop_index('idx_return_decision_pathway_time', table_name='return_decisions')
    op.drop_index('idx_return_decision_user', table_name='return_decisions')
    op.drop_table('return_decisions')
    op.drop_table('monthly_category_summaries')
    op.drop_table('monthly_financial_summaries')
    op.drop_index('idx_cost_sharing_status_time', table_name='cost_sharing_records')
    op.drop_index('idx_cost_sharing_user', table_name='cost_sharing_records')
    op.drop_index('idx_cost_sharing_seller_time', table_name='cost_sharing_records')
    op.drop_table('cost_sharing_records')
    op.drop_index('idx_wallet_tx_type_time', table_name='wallet_transactions')
    op.drop_index('idx_wallet_tx_status_time', table_name='wallet_transactions')
    op.drop_index('idx_wallet_tx_user_time', table_name='wallet_transactions')
    op.drop_table('wallet_transactions')
    op.drop_table('wallets')
