from dependency_injector import containers, providers

from starledger.database.session import get_db
from starledger.config import Settings
from starledger.services.identity_service import IdentityService
from starledger.services.star_service import StarService
from starledger.services.spend_gate_service import SpendGateService
from starledger.services.share_award_service import ShareAwardService
from starledger.services.referral_service import ReferralService
from starledger.services.identity_merge_service import IdentityMergeService


class ConfigModule(containers.DeclarativeContainer):
    """Application configuration."""

    config = providers.Singleton(Settings)


class RepositoryModule(containers.DeclarativeContainer):
    """Database session."""

    get_db = providers.Resource(get_db)


class ServiceModule(containers.DeclarativeContainer):
    """Service layer dependencies."""

    config = providers.DependenciesContainer()
    repositories = providers.DependenciesContainer()

    identity_service = providers.Factory(IdentityService, settings=config.config)
    star_service = providers.Factory(StarService, db=repositories.get_db, settings=config.config)
    spend_gate_service = providers.Factory(SpendGateService, star_service=star_service)
    share_award_service = providers.Factory(ShareAwardService, db=repositories.get_db, settings=config.config)
    referral_service = providers.Factory(ReferralService, db=repositories.get_db, settings=config.config)
    identity_merge_service = providers.Factory(IdentityMergeService, db=repositories.get_db, settings=config.config)


class Container(containers.DeclarativeContainer):
    """Application container."""

    wiring_config = containers.WiringConfiguration(
        modules=[
            "starledger.routers.health_router",
            "starledger.routers.device_router",
            "starledger.routers.star_router",
            "starledger.routers.share_router",
            "starledger.routers.referral_router",
            "starledger.routers.merge_router",
        ],
    )

    config = providers.Container(ConfigModule)
    repositories = providers.Container(RepositoryModule)
    services = providers.Container(
        ServiceModule, config=config, repositories=repositories
    )
