"""
Domain constants: roles, account states and the customer enumerations.

Stored values are the literal strings the web client sends and displays,
so the Chinese labels are the canonical values, not translations.
"""


class UserRole:
    SUPER_ADMIN = "SUPER_ADMIN"
    FACTORY_SALES = "FACTORY_SALES"
    AGENT = "AGENT"
    INVENTORY_MANAGER = "INVENTORY_MANAGER"

    ALL = (SUPER_ADMIN, FACTORY_SALES, AGENT, INVENTORY_MANAGER)
    # Roles stored on the users table (agents live in their own table)
    USER_ROLES = (SUPER_ADMIN, FACTORY_SALES, INVENTORY_MANAGER)
    SELF_REGISTERABLE = (FACTORY_SALES, INVENTORY_MANAGER)


ROLE_DISPLAY = {
    UserRole.SUPER_ADMIN: "超级管理员",
    UserRole.FACTORY_SALES: "原厂销售",
    UserRole.AGENT: "代理商",
    UserRole.INVENTORY_MANAGER: "库存管理员",
}


class AccountStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    ALL = (PENDING, APPROVED, REJECTED)


STATUS_DISPLAY = {
    AccountStatus.APPROVED: "已批准",
    AccountStatus.PENDING: "待审批",
    AccountStatus.REJECTED: "已拒绝",
}


class CustomerNature:
    LISTED = "民营上市公司"
    SME = "民营中小企业"
    RESEARCH = "科研院所"
    STATE_OWNED = "国央企"

    ALL = (LISTED, SME, RESEARCH, STATE_OWNED)


class CustomerImportance:
    A = "A类客户（近三个月能生产）"
    B = "B类客户（近半年能生产）"
    C = "C类客户（近一年能生产）"

    ALL = (A, B, C)


IMPORTANCE_SHORT_LABEL = {
    CustomerImportance.A: "A类客户",
    CustomerImportance.B: "B类客户",
    CustomerImportance.C: "C类客户",
}


class CustomerProgress:
    SAMPLE_EVALUATION = "样板评估"
    TESTING = "打样测试"
    SMALL_BATCH = "小批量导入"
    MASS_PRODUCTION = "批量出货"
    PUBLIC_POOL = "进入公海"

    ALL = (SAMPLE_EVALUATION, TESTING, SMALL_BATCH, MASS_PRODUCTION, PUBLIC_POOL)
    ACTIVE = (SAMPLE_EVALUATION, TESTING, SMALL_BATCH, MASS_PRODUCTION)


# Progress history uses this as the "from" value of a freshly created customer
PROGRESS_NONE = "无"


class AssignmentType:
    MOVE_TO_PUBLIC = "移入公海池"
    FOLLOW = "跟进"
    ASSIGN = "分配"
    CLAIM = "认领"
    CREATE_ASSIGN = "新建分配"
    CREATE_CLAIM = "新建认领"


class StockOperationType:
    IN = "in"
    OUT = "out"

    ALL = (IN, OUT)


# Quantity breakpoints the CSV export normalizes pricing tiers onto
STANDARD_PRICING_TIERS = (0, 1000, 10000, 50000, 100000, 500000, 1000000)
PRICING_TIER_COUNT = 7
