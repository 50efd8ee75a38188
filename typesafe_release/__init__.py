"""Release packaging pipeline for the Typesafe Editor desktop application."""

from .archive import Archiver, ReleaseArchive  # noqa: F401
from .bundle import BundleAssembler, StagingBundle  # noqa: F401
from .compiler import BuildArtifact, CompilerInvoker  # noqa: F401
from .config import (  # noqa: F401
    ReleaseConfig,
    SigningConfig,
    SigningCredential,
    build_config_from_mapping,
    load_config,
)
from .dependencies import DependencyStager  # noqa: F401
from .fetch import DependencyFetcher  # noqa: F401
from .generator import DataGenerator  # noqa: F401
from .manifest import OptionalResource, ResourceStatus, default_resources  # noqa: F401
from .pipeline import PipelineReport, ReleasePipeline, run_release  # noqa: F401
from .results import PipelineState, ReleaseError, Stage, StageResult, StageStatus  # noqa: F401
from .signing import Signer  # noqa: F401

__version__ = "1.0.0"

__all__ = [
    "Archiver",
    "BuildArtifact",
    "BundleAssembler",
    "CompilerInvoker",
    "DataGenerator",
    "DependencyFetcher",
    "DependencyStager",
    "OptionalResource",
    "PipelineReport",
    "PipelineState",
    "ReleaseArchive",
    "ReleaseConfig",
    "ReleaseError",
    "ReleasePipeline",
    "ResourceStatus",
    "Signer",
    "SigningConfig",
    "SigningCredential",
    "Stage",
    "StageResult",
    "StageStatus",
    "StagingBundle",
    "build_config_from_mapping",
    "default_resources",
    "load_config",
    "run_release",
]
