"""s3sitedeploy package

Classic src/ layout:
    src/s3sitedeploy/
        __init__.py          (re-export public API)
        globmatch.py         (pure glob matching)
        planner.py           (glob -> deployment groups)
        site_deploy.py       (SiteDeployer implementation)
        logger.py            (DeployLogger + LoggedSiteDeployer)
        metadata.py          (Content-Type normaliser)
        lambda_function.py   (Lambda entry point for the normaliser)
        config.py            (environment settings)
        cli.py               (s3-site-deploy command)
"""
from .errors import (  # noqa: F401
    ConfigurationError,
    MalformedEventError,
    MetadataRewriteError,
    SiteDeployError,
    TransferError,
)
from .planner import DeploymentGroup, plan_deployment, with_default_cache_control  # noqa: F401
from .site_deploy import DeploymentReport, FileOutcome, OutcomeStatus, SiteDeployer  # noqa: F401
from .logger import DeployLogger, LoggedSiteDeployer  # noqa: F401
from .metadata import (  # noqa: F401
    DEFAULT_CONTENT_TYPES,
    ContentTypeTable,
    MetadataNormalizer,
    RewriteOutcome,
    RewriteState,
)
