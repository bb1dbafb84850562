"""
Placement run orchestration.

``PlacementTask.run`` walks the composition (compartment rows first, then the
bulk rows, proteins ahead of everything else in each group), asks the bodies
for anchor points, grows every molecule instance and appends the particles to
a ``ParticlePositionBuffer``. The run is single-threaded and driven by one
seeded random stream, so the same seed and composition always produce the
same positions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import math
import random
import threading
import time
from typing import Callable, List, Optional, Sequence, Tuple

from molplace.bodies import (
    DECREASE_FACTOR,
    Body,
    BodySphere,
    BodyXyLayer,
    BoxSizeInfo,
    ExclusionSphere,
    LayerSurfaceMode,
    PlacementContext,
    SphereSurfaceMode,
)
from molplace.chain import ChainBuilder, ChainGrowthPlacer
from molplace.composition import (
    Compartment,
    Composition,
    CompositionRow,
    ParticleCatalog,
    PlacementSettings,
    protein_first,
)
from molplace.errors import (
    GeometryExhaustionError,
    InternalInconsistencyError,
    MissingConfigurationDataError,
    PlacementCancelled,
)
from molplace.positions import ParticlePosition, ParticlePositionBuffer
from molplace.protein import (
    GlobuleProteinGenerator,
    ProteinGenerator,
    protein_radius,
    random_rotation,
)
from molplace.vectors import Vector


class TaskState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    FINISHED_SUCCESS = "finished_success"
    FINISHED_CANCELLED = "finished_cancelled"
    FINISHED_ERROR = "finished_error"


class CancellationToken:
    """Thread-safe flag polled by a running task."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class PlacementResult:
    positions: Tuple[ParticlePosition, ...]
    box_size_info: BoxSizeInfo
    length_conversion_factor: float
    catalog: ParticleCatalog

    def __len__(self) -> int:
        return len(self.positions)


ProgressCallback = Callable[[int], None]
ErrorCallback = Callable[[BaseException], None]


class PlacementTask:
    def __init__(
        self,
        composition: Composition,
        settings: PlacementSettings,
        catalog: ParticleCatalog,
        *,
        protein_generator: Optional[ProteinGenerator] = None,
        chain_builder: Optional[ChainBuilder] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        self.composition = composition
        self.settings = settings
        self.catalog = catalog
        self.protein_generator: ProteinGenerator = protein_generator or GlobuleProteinGenerator()
        self.chain_builder = chain_builder
        self.on_progress = on_progress
        self.on_error = on_error
        self.cancel_token = cancel_token or CancellationToken()

        self._state = TaskState.NOT_STARTED
        self._progress = 0
        self._result: Optional[PlacementResult] = None
        self._error: Optional[BaseException] = None

        self._context: Optional[PlacementContext] = None
        self._buffer: Optional[ParticlePositionBuffer] = None
        self._rng: Optional[random.Random] = None
        self._chain: Optional[ChainGrowthPlacer] = None
        self._total = 0
        self._molecule_count = 0

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def result(self) -> Optional[PlacementResult]:
        return self._result

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def stop(self) -> None:
        """Request cancellation; the run unwinds at its next check."""
        self.cancel_token.cancel()

    def run_in_thread(self) -> threading.Thread:
        thread = threading.Thread(target=self.run, name="placement-task", daemon=True)
        thread.start()
        return thread

    def run(self) -> bool:
        """Execute the placement. Returns True on success, False on cancellation or error."""
        if self._state is TaskState.RUNNING:
            raise RuntimeError("Placement task is already running.")
        self._state = TaskState.RUNNING
        self._result = None
        self._error = None
        self._progress = 0
        self._notify_progress(0)
        started = time.perf_counter()
        try:
            self._result = self._execute()
            self._state = TaskState.FINISHED_SUCCESS
            self._set_progress(100)
            logging.info(
                f"Placed {len(self._result)} particles in "
                f"{time.perf_counter() - started:.3f}s."
            )
            return True
        except PlacementCancelled:
            logging.info("Placement cancelled.")
            self._state = TaskState.FINISHED_CANCELLED
            return False
        except Exception as exc:
            logging.exception(f"Placement failed: {exc}")
            self._error = exc
            self._state = TaskState.FINISHED_ERROR
            if self.on_error is not None:
                self.on_error(exc)
            return False
        finally:
            self.release_memory()

    def release_memory(self) -> None:
        """Drop per-run working state; the result, if any, survives."""
        if self._context is not None:
            self._context.clear()
        self._context = None
        self._buffer = None
        self._rng = None
        self._chain = None

    # -- run body -----------------------------------------------------------------

    def _execute(self) -> PlacementResult:
        settings = self.settings
        self._total = self._validate()
        self._molecule_count = 0
        self._rng = random.Random(settings.seed)
        self._context = PlacementContext()
        self._buffer = ParticlePositionBuffer(settings.growth_increment)
        self._chain = ChainGrowthPlacer(
            settings.bond_length,
            builder=self.chain_builder,
            max_correction_attempts=settings.max_correction_attempts,
        )
        logging.info(
            f"Placing {self._total} particles with seed {settings.seed} "
            f"and bond length {settings.bond_length:g}."
        )

        for compartment in self.composition.compartments:
            for row in protein_first(compartment.rows):
                self._check_cancelled()
                self._place_compartment_row(compartment, row)
            self._check_cancelled()

        box = self.composition.box
        self._context.set_exclusions(box, [])
        for row in protein_first(self.composition.bulk_rows):
            self._check_cancelled()
            self._place_bulk_row(row)
        self._check_cancelled()

        positions = self._buffer.get_sized_array()
        if len(positions) != self._total:
            raise InternalInconsistencyError(
                f"Placed {len(positions)} particles but {self._total} were requested."
            )
        return PlacementResult(
            positions=tuple(positions),
            box_size_info=box.box_size_info,  # type: ignore[union-attr]
            length_conversion_factor=settings.length_conversion_factor,
            catalog=self.catalog,
        )

    def _validate(self) -> int:
        """Check the composition is complete and return the number of particles to place."""
        composition = self.composition
        if composition.box is None:
            raise MissingConfigurationDataError("Composition has no simulation box.")
        total = 0
        for compartment in composition.compartments:
            if not isinstance(compartment.body, (BodySphere, BodyXyLayer)):
                raise MissingConfigurationDataError(
                    f"Compartment '{compartment.name}' has no sphere or layer geometry."
                )
            for row in compartment.rows:
                total += self._validate_row(row, in_bulk=False)
        for row in composition.bulk_rows:
            total += self._validate_row(row, in_bulk=True)
        return total

    def _validate_row(self, row: CompositionRow, in_bulk: bool) -> int:
        if not self.catalog.has_molecule(row.molecule_name):
            raise MissingConfigurationDataError(
                f"Molecule '{row.molecule_name}' is not in the particle catalog."
            )
        if row.is_protein and row.surface_quantity > 0:
            raise MissingConfigurationDataError(
                f"Protein '{row.molecule_name}' cannot be placed on a surface."
            )
        if in_bulk and row.surface_quantity > 0:
            raise MissingConfigurationDataError(
                f"Bulk molecule '{row.molecule_name}' cannot have a surface quantity."
            )
        particles = row.particles()
        for particle in dict.fromkeys(particles):
            self.catalog.kind_for(row.molecule_name, particle)
        return row.total_quantity * len(particles)

    def _place_compartment_row(self, compartment: Compartment, row: CompositionRow) -> None:
        body = compartment.body
        if body is None:
            raise MissingConfigurationDataError(f"Compartment '{compartment.name}' has no geometry.")
        if row.is_protein:
            self._place_proteins(body, row, in_bulk=False)
            return

        rng = self._rng
        context = self._context
        trials = self.settings.number_of_trials
        particles = row.particles()

        if row.volume_quantity > 0:
            quantity = row.volume_quantity
            if compartment.lattice and isinstance(body, BodyXyLayer):
                firsts = body.simple_cubic_lattice_points(quantity)
                lasts = firsts
            elif len(particles) == 1:
                firsts = body.fill_random_volume_points(context, quantity, trials, rng)
                lasts = firsts
            else:
                firsts, lasts = body.fill_random_volume_point_pairs(
                    context, quantity, self.settings.bond_length, trials, rng
                )
            for first, last in zip(firsts, lasts):
                coordinates = self._place_chain(
                    row,
                    particles,
                    first,
                    last,
                    is_free=lambda point: body.is_in_free_volume(point, context),
                    random_free_point=lambda: body.random_free_point(context, trials, rng)[0],
                )
                self._append_molecule(row, particles, coordinates, False)

        if row.surface_quantity > 0:
            mode = self._surface_mode(body, row)
            for point in body.fill_random_surface_points(row.surface_quantity, rng, mode):
                coordinates = self._place_chain(
                    row,
                    particles,
                    point,
                    body.surface_last_anchor(point, mode),
                    is_free=body.is_in_volume,
                    random_free_point=lambda: body.random_point_in_volume(rng),
                )
                self._append_molecule(row, particles, coordinates, False)

    def _place_chain(
        self,
        row: CompositionRow,
        particles: Sequence[str],
        first: Vector,
        last: Vector,
        is_free: Callable[[Vector], bool],
        random_free_point: Callable[[], Vector],
    ) -> List[Vector]:
        self._check_cancelled()
        if len(particles) == 1:
            return [first]
        return self._chain.place_in_free_volume(
            row.molecule_name,
            particles,
            first,
            last,
            is_free=is_free,
            random_free_point=random_free_point,
            is_cancelled=lambda: self.cancel_token.is_cancelled,
        )

    def _place_bulk_row(self, row: CompositionRow) -> None:
        box = self.composition.box
        if row.is_protein:
            self._place_proteins(box, row, in_bulk=True)
            return
        if row.volume_quantity == 0:
            return

        rng = self._rng
        context = self._context
        trials = self.settings.number_of_trials
        particles = row.particles()
        firsts, lasts = box.fill_random_volume_point_pairs(
            context, row.volume_quantity, self.settings.bond_length, trials, rng
        )
        for first, last in zip(firsts, lasts):
            coordinates = self._chain.place_in_free_volume(
                row.molecule_name,
                particles,
                first,
                last,
                is_free=lambda point: box.is_in_free_volume(point, context),
                random_free_point=lambda: box.random_free_point(context, trials, rng)[0],
                is_cancelled=lambda: self.cancel_token.is_cancelled,
            )
            self._append_molecule(row, particles, coordinates, True)

    def _place_proteins(self, body: Body, row: CompositionRow, in_bulk: bool) -> None:
        quantity = row.volume_quantity
        if quantity == 0:
            return
        protein = row.protein_data
        if protein is None:
            raise MissingConfigurationDataError(f"Protein '{row.molecule_name}' has no protein data.")
        radius = protein_radius(protein.particle_count, self.settings.density)

        if quantity == 1 and isinstance(body, BodySphere):
            spheres = [ExclusionSphere(body.center, min(radius, body.radius))]
            self._context.add_exclusions(body, spheres)
        else:
            spheres = body.non_overlapping_random_spheres(
                self._context, quantity, radius, self.settings.number_of_trials, self._rng
            )
        if len(spheres) < quantity:
            raise GeometryExhaustionError(
                f"Only {len(spheres)} of {quantity} '{row.molecule_name}' proteins fit "
                f"without overlap in {body.describe()}."
            )

        for sphere in spheres:
            self._check_cancelled()
            rotation = random_rotation(self._rng) if row.protein_orientation == "random" else None
            placed = self.protein_generator.particle_coordinates(
                protein, sphere.center, sphere.radius * DECREASE_FACTOR, rotation
            )
            self._append_molecule(
                row,
                [particle for particle, _ in placed],
                [coordinates for _, coordinates in placed],
                in_bulk,
            )

    @staticmethod
    def _surface_mode(body: Body, row: CompositionRow):
        if isinstance(body, BodySphere):
            return SphereSurfaceMode(row.surface_mode or SphereSurfaceMode.ALL.value)
        return LayerSurfaceMode(row.surface_mode or LayerSurfaceMode.XY_TOP_BOTTOM.value)

    def _append_molecule(
        self,
        row: CompositionRow,
        particles: Sequence[str],
        coordinates: List[Vector],
        in_bulk: bool,
    ) -> None:
        if len(particles) != len(coordinates):
            raise InternalInconsistencyError(
                f"Got {len(coordinates)} coordinates for {len(particles)} particles "
                f"of '{row.molecule_name}'."
            )
        buffer = self._buffer
        molecule_index = self._molecule_count
        self._molecule_count += 1
        for particle, (x, y, z) in zip(particles, coordinates):
            kind = self.catalog.kind_for(row.molecule_name, particle)
            buffer.add_position(kind, x, y, z, buffer.size, molecule_index, in_bulk)
        if self._total:
            self._set_progress(min(99, math.floor(99 * buffer.size / self._total)))

    # -- notifications -----------------------------------------------------------

    def _check_cancelled(self) -> None:
        if self.cancel_token.is_cancelled:
            raise PlacementCancelled()

    def _set_progress(self, value: int) -> None:
        if value == self._progress:
            return
        self._progress = value
        self._notify_progress(value)

    def _notify_progress(self, value: int) -> None:
        if self.on_progress is not None:
            self.on_progress(value)
