r"""
Finite element discretisation on hierarchical quadrilateral meshes.

Classes
-------
Discretisation : class
    Bilinear elements on the active cells of a mesh: dof numbering,
    mass / Laplace operators, load vectors, interpolation.
BoundaryValues : class
    Dirichlet data of a field as a function of time.
HangingNodeConstraints : class
    Continuity constraints at hanging nodes.
SnapshotWriter : class
    HDF5 / XDMF output of vertex fields.

See Also
--------
adaptwave.meshing : Mesh construction and refinement.
"""
from .constraints import HangingNodeConstraints
from .discretisation import Discretisation, BoundaryValues
from .output import SnapshotWriter
