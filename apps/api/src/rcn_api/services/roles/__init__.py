"""Role exclusivity and registration services."""

from .admin_audit import AdminAddressConflict, AdminAddressReport, AdminRoleAudit  # noqa: F401
from .registration import CustomerRegistration, RegistrationService, ShopRegistration  # noqa: F401
from .registries import (  # noqa: F401
    AddressRoleIndex,
    AdminAllowList,
    CustomerRegistry,
    SettingsAdminAllowList,
    ShopRegistry,
    SqlAddressRoleIndex,
    SqlCustomerRegistry,
    SqlShopRegistry,
)
from .validator import RoleCheckResult, RoleCheckStatus, RoleExclusivityValidator  # noqa: F401
