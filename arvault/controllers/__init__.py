from arvault.controllers.assets import AdminAssetController, AssetProxyController, UserAssetController
from arvault.controllers.shares import PublicShareController, UserShareController
from arvault.controllers.uploads import AdminUploadController, UserUploadController

ROUTE_HANDLERS = [
    AssetProxyController,
    UserUploadController,
    AdminUploadController,
    UserAssetController,
    AdminAssetController,
    UserShareController,
    PublicShareController,
]

__all__ = [
    "ROUTE_HANDLERS",
    "AdminAssetController",
    "AdminUploadController",
    "AssetProxyController",
    "PublicShareController",
    "UserAssetController",
    "UserShareController",
    "UserUploadController",
]
