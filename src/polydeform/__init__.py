"""Affine-map deformation and parallel offsets of polygonal meshes."""

from .affine_maps import (
    AffineData,
    AffineDeformResult,
    AffineEnergyType,
    affine_maps_deform,
    affine_maps_precompute,
    affine_maps_precompute_mesh,
)
from .errors import (
    InvalidTopologyError,
    NumericError,
    PolyDeformError,
    PreconditionError,
    UnsupportedVariantError,
)
from .geometry import cube_mesh, disjoint_quads, grid_mesh
from .mesh import PolyMesh
from .offset import OffsetMeshProblem, OffsetType
from .optimizer import LevenbergMarquardtSolver
from .problem import LeastSquaresProblem
from .quadratic import QuadraticSolver
from .topology import polygonal_edge_topology
from .utils import TunableParameter, get_logger, resolve_device

__all__ = [
    "AffineData",
    "AffineDeformResult",
    "AffineEnergyType",
    "affine_maps_deform",
    "affine_maps_precompute",
    "affine_maps_precompute_mesh",
    "InvalidTopologyError",
    "NumericError",
    "PolyDeformError",
    "PreconditionError",
    "UnsupportedVariantError",
    "cube_mesh",
    "disjoint_quads",
    "grid_mesh",
    "PolyMesh",
    "OffsetMeshProblem",
    "OffsetType",
    "LevenbergMarquardtSolver",
    "LeastSquaresProblem",
    "QuadraticSolver",
    "polygonal_edge_topology",
    "TunableParameter",
    "get_logger",
    "resolve_device",
]
