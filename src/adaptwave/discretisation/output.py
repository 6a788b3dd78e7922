r"""
Snapshot output of the displacement and velocity fields.

Every snapshot is a pair of files:

- ``solution-NNN.h5`` holds the vertex coordinates (``geometry/vertices``),
  the cell connectivity (``topology/cells``) and one dataset per field
  under ``vertex_fields/``;
- ``solution-NNN.xdmf`` describes that file so ParaView / VisIt can open
  it directly.

Hanging nodes are ordinary vertices of the finer cells, so the
connectivity is written unchanged.
"""

import os
import logging

import numpy as np

import adaptwave.timing as timing
from adaptwave.utilities import aw_object

logger = logging.getLogger(__name__)


class SnapshotWriter(aw_object):
    r"""
    Writes ``<basename>-<step:03d>.h5`` snapshots with XDMF descriptors.

    Parameters
    ----------
    output_path : str or None
        Directory for the snapshot files; created if missing. ``None``
        disables output (:meth:`write_snapshot` returns ``None``).
    basename : str
        File name prefix.
    output_format : str
        Only ``"h5"`` is supported.

    Example
    -------
    >>> writer = aw.discretisation.SnapshotWriter("output")
    >>> writer.filename(3)
    'output/solution-003.h5'
    """

    def __init__(self, output_path=".", basename="solution", output_format="h5"):
        super().__init__()

        if output_format != "h5":
            raise ValueError(f"Unsupported output format '{output_format}', expected 'h5'")

        self.output_path = output_path
        self.basename = basename
        self.output_format = output_format
        self.written = []

    @property
    def enabled(self):
        return self.output_path is not None

    def filename(self, step_index, extension=None):
        if extension is None:
            extension = self.output_format
        name = f"{self.basename}-{step_index:03d}.{extension}"
        return os.path.join(self.output_path, name)

    @timing.routine_timer_decorator
    def write_snapshot(self, step_index, fields, discretisation, time=None):
        """
        Write the vertex `fields` (``{"U": array, "V": array}``) of
        `discretisation` for step `step_index`.

        Returns the name of the HDF5 file, or None when output is disabled.
        """
        import h5py

        if not self.enabled:
            return None

        for name, values in fields.items():
            discretisation.check_vector(name, values)

        os.makedirs(self.output_path, exist_ok=True)
        h5_filename = self.filename(step_index)

        with h5py.File(h5_filename, "w") as h5:
            geometry = h5.create_group("geometry")
            geometry.create_dataset("vertices", data=discretisation.coords)

            topology = h5.create_group("topology")
            cells = topology.create_dataset("cells", data=discretisation.cell_dofs)
            cells.attrs["cell_dim"] = 2

            vertex_fields = h5.create_group("vertex_fields")
            for name, values in fields.items():
                vertex_fields.create_dataset(name, data=np.asarray(values, dtype=float))

            h5.attrs["step"] = int(step_index)
            h5.attrs["generation"] = int(discretisation.generation)
            if time is not None:
                h5.attrs["time"] = float(time)

        self._write_xdmf(step_index, h5_filename, fields, discretisation, time)
        self.written.append(h5_filename)

        logger.debug("Wrote snapshot %s", h5_filename)
        return h5_filename

    def _write_xdmf(self, step_index, h5_filename, fields, discretisation, time):
        numVertices = discretisation.n_dofs
        numCells = discretisation.n_active_cells

        header = f"""<?xml version="1.0" ?>
<!DOCTYPE Xdmf SYSTEM "Xdmf.dtd" [
<!ENTITY MeshData "{os.path.basename(h5_filename)}">
]>"""

        xdmf_start = f"""
<Xdmf>
  <Domain Name="domain">
    <DataItem Name="cells"
              ItemType="Uniform"
              Format="HDF"
              NumberType="Int" Precision="8"
              Dimensions="{numCells} 4">
      &MeshData;:/topology/cells
    </DataItem>
    <DataItem Name="vertices"
              Format="HDF"
              Dimensions="{numVertices} 2">
      &MeshData;:/geometry/vertices
    </DataItem>
    <!-- ============================================================ -->
      <Grid Name="domain" GridType="Uniform">
        <Topology
           TopologyType="Quadrilateral"
           NumberOfElements="{numCells}">
          <DataItem Reference="XML">
            /Xdmf/Domain/DataItem[@Name="cells"]
          </DataItem>
        </Topology>
        <Geometry GeometryType="XY">
          <DataItem Reference="XML">
            /Xdmf/Domain/DataItem[@Name="vertices"]
          </DataItem>
        </Geometry>
"""
        if time is not None:
            xdmf_start += f"""        <Time Value="{time:.12g}" />
"""

        attributes = ""
        for name in fields:
            attributes += f"""
        <Attribute
           Name="{name}"
           Type="Scalar"
           Center="Node">
          <DataItem Format="HDF"
                    NumberType="Float" Precision="8"
                    Dimensions="{numVertices}">
            &MeshData;:/vertex_fields/{name}
          </DataItem>
        </Attribute>"""

        xdmf_end = """
    </Grid>
  </Domain>
</Xdmf>
"""

        with open(self.filename(step_index, "xdmf"), "w") as fp:
            fp.write(header + xdmf_start + attributes + xdmf_end)
