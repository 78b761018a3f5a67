from .auth import (
    Branch, RoleTemplate, User, UserBranch, SessionToken,
    PermissionScope, RolePermission, UserPermissionOverride, PERMISSION_FLAGS,
)
from .master_data import (
    Uom, UomConversion, Size, Color, Grade, PackingType,
    ProductGroup, ProductGroupItemType, ProductSubgroup, ProductSubgroupItemType,
    ProductType, PartyGroup, AccountGroup, Department,
    Item, Variant, Sku, ITEM_TYPES, PARTY_TYPES, ACCOUNT_TYPES,
)
from .approvals import ApprovalPolicy, ApprovalRequest, APPROVAL_STATUSES
from .audit import ActivityLog
from .production import Labour, LabourRateRule, LabourRateRuleExclusion, BomHeader, BomRmLine

__all__ = [
    'Branch', 'RoleTemplate', 'User', 'UserBranch', 'SessionToken',
    'PermissionScope', 'RolePermission', 'UserPermissionOverride', 'PERMISSION_FLAGS',
    'Uom', 'UomConversion', 'Size', 'Color', 'Grade', 'PackingType',
    'ProductGroup', 'ProductGroupItemType', 'ProductSubgroup', 'ProductSubgroupItemType',
    'ProductType', 'PartyGroup', 'AccountGroup', 'Department',
    'Item', 'Variant', 'Sku', 'ITEM_TYPES', 'PARTY_TYPES', 'ACCOUNT_TYPES',
    'ApprovalPolicy', 'ApprovalRequest', 'APPROVAL_STATUSES',
    'ActivityLog',
    'Labour', 'LabourRateRule', 'LabourRateRuleExclusion', 'BomHeader', 'BomRmLine',
]
