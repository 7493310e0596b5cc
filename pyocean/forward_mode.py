from __future__ import annotations
"""
Forward-mode run driver.

Intent
- Own the life cycle of one model run:
    init()         mesh, blocks, clock, streams, tendency terms, analysis
                   members, integrator; initial state from the restart
                   stream, an analytic test case or the input stream
    setup_clock()  startup analysis and output, time averages
    run()          the time loop until the clock's stop condition
    finalize()     analysis finalize, close streams, drop the clock
- Setup errors of every term and member are collected first and surfaced
  once (SetupError); errors raised inside the time loop propagate.

Per iteration (level 1 = start of step, level 2 = scratch):
    read ringing input streams, reset input alarms
    advance clock, build forcing
    integrate, shift time levels, accumulate time averages
    analysis compute + write
    output stream (then reset averages), restart stream + timestamp marker
    remaining output streams, reset output alarms

Usage
    model = ForwardMode(ConfigPool.from_env())
    model.init()
    model.setup_clock()
    model.run()
    model.finalize()
"""

import functools
import logging
import os

import numpy as np

from . import time_average
from .analysis import AnalysisDriver
from .config import ConfigPool
from .decomposition import decompose
from .diagnostics import Invariants, compute_diagnostics, domain_invariants
from .errors import ErrorCollector, InvalidCombination, format_banner
from .forcing import ForcingParams, build_forcing_arrays, build_fraction_absorbed_array
from .mesh import Mesh, load_mesh, operator_self_test, planar_periodic_mesh
from .parallel import Communicator, gather_global, make_communicator
from .state import Domain, allocate_block, compute_max_mesh_density
from .streams import StreamManager
from .tendency import init_terms
from .testcases import apply_test_case
from .time_integration import SplitExplicitIntegrator, validate_integrator_config
from .timekeeping import setup_clock, write_restart_timestamp

RESTART_STREAM = "restart"
OUTPUT_STREAM = "output"
INPUT_STREAM = "input"


def abort_on_error(method):
    """Multi-rank: log a banner and abort every rank. Serial: log and re-raise."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except Exception as e:
            comm = getattr(self, "comm", None)
            if comm is None or comm.size == 1:
                self.logger.critical(format_banner(str(e)))
                raise
            self.logger.exception(str(e), stack_info=True, stacklevel=3)
            comm.global_abort(str(e))

    return wrapper


def build_mesh(config) -> Mesh:
    path = config.get_config("config_mesh_file")
    if path != "none":
        return load_mesh(path)
    return planar_periodic_mesh(
        config.get_config("config_planar_nx"),
        config.get_config("config_planar_ny"),
        config.get_config("config_planar_dc"),
        config.get_config("config_planar_n_vert_levels"),
        bottom_depth=config.get_config("config_planar_bottom_depth"),
        f0=config.get_config("config_planar_f0"),
        beta=config.get_config("config_planar_beta"),
        lat0=config.get_config("config_planar_lat0"),
    )


class ForwardMode:
    def __init__(
        self,
        config: ConfigPool | None = None,
        comm: Communicator | None = None,
        mesh: Mesh | None = None,
    ) -> None:
        self.config = config if config is not None else ConfigPool.from_env()
        self.logger = logging.getLogger("pyocean")
        self.comm = comm if comm is not None else make_communicator(self.config.get_config("config_communicator"))
        self.mesh = mesh
        self.run_directory = self.config.get_config("config_run_directory")
        self.domain: Domain | None = None
        self.terms = None
        self.integrator: SplitExplicitIntegrator | None = None
        self.analysis: AnalysisDriver | None = None
        self.forcing_params: ForcingParams | None = None

    @property
    def clock(self):
        return None if self.domain is None else self.domain.clock

    @property
    def streams(self) -> StreamManager:
        return self.domain.streams

    # ---------- init ----------
    @abort_on_error
    def init(self) -> None:
        config = self.config
        comm = self.comm

        if self.mesh is None:
            self.mesh = build_mesh(config)
        local = decompose(
            self.mesh,
            rank=comm.rank,
            size=comm.size,
            n_blocks=config.get_config("config_number_of_blocks"),
            method=config.get_config("config_block_decomp_method"),
            halo_layers=config.get_config("config_num_halos"),
        )
        blocks = [allocate_block(block_id, mesh) for block_id, mesh in local]
        domain = Domain(config=config, comm=comm, blocks=blocks)
        self.domain = domain

        domain.clock = setup_clock(config, self.run_directory)
        domain.streams = StreamManager(config.streams, domain.clock, self.run_directory, comm)

        # every setup failure below is collected, then one decision
        errors = ErrorCollector()
        self.analysis = AnalysisDriver(config)
        self.analysis.setup_packages(domain)

        self.terms, term_errors = init_terms(config)
        errors.extend(term_errors)
        with errors.collect("forcing"):
            self.forcing_params = ForcingParams.from_config(config)
        with errors.collect("time integrator"):
            validate_integrator_config(config)
        errors.extend(self.analysis.init(domain))
        errors.raise_if_any("Model setup failed")

        self.integrator = SplitExplicitIntegrator(config, self.terms)
        self.integrator.init(domain, domain.clock.dt)
        domain.streams.bind(domain)

        self._initial_state()
        domain.exchange_cells(lambda b: b.state.layer_thickness.level(1))
        domain.exchange_cells(lambda b: b.state.temperature.level(1))
        domain.exchange_cells(lambda b: b.state.salinity.level(1))
        domain.exchange_cells(lambda b: b.state.ssh.level(1))
        domain.exchange_edges(lambda b: b.state.normal_velocity.level(1))
        domain.exchange_edges(lambda b: b.state.normal_barotropic_velocity.level(1))
        domain.streams.reset_alarms(direction="input")

        density0 = float(config.get_config("config_density0"))
        for block in domain.blocks:
            compute_diagnostics(block, 1, self.terms.eos, density0=density0)

        if config.get_config("config_maxMeshDensity") < 0.0:
            config.set_config("config_maxMeshDensity", compute_max_mesh_density(domain))
        self.logger.info("[Init] maxMeshDensity = %g", config.get_config("config_maxMeshDensity"))

        if config.get_config("config_conduct_tests"):
            self.conduct_tests()

        for block in domain.blocks:
            block.diagnostics.xtime = domain.clock.timestamp
        self.logger.info(
            "[Init] %d block(s) on rank %d, %d global cells, start %s",
            len(domain.blocks),
            comm.rank,
            self.mesh.n_global_cells,
            domain.clock.timestamp,
        )

    def _initial_state(self) -> None:
        config = self.config
        domain = self.domain
        if config.get_config("config_do_restart"):
            domain.streams.read(domain, RESTART_STREAM, timestamp=domain.clock.timestamp)
            self.logger.info("[Init] Restarted from %s", domain.clock.timestamp)
        elif config.get_config("config_test_case") != "none":
            apply_test_case(domain, config.get_config("config_test_case"))
        elif domain.streams.has_stream(INPUT_STREAM):
            domain.streams.read(domain, INPUT_STREAM)
            for block in domain.blocks:
                state = block.state
                state.ssh.level(1)[:] = state.layer_thickness.level(1).sum(axis=1) - block.mesh.bottom_depth
        else:
            raise InvalidCombination("No initial state: no restart, test case or input stream.")

    def conduct_tests(self) -> dict[str, bool]:
        results: dict[str, bool] = {}
        for block in self.domain.blocks:
            for name, ok in operator_self_test(block.mesh).items():
                results[name] = results.get(name, True) and ok
        for name, ok in results.items():
            self.logger.info("[Tests] %-32s %s", name, "PASS" if ok else "FAIL")
        return results

    # ---------- startup ----------
    @abort_on_error
    def setup_clock(self) -> None:
        domain = self.domain
        self.logger.info("[Clock] Initial time %s", domain.clock.timestamp)

        self.analysis.compute_startup(domain).raise_if_any("Analysis startup failed")

        for block in domain.blocks:
            time_average.reset(block)
        if self.config.get_config("config_write_output_on_startup") and domain.streams.has_stream(OUTPUT_STREAM):
            for block in domain.blocks:
                time_average.accumulate(block)
            domain.streams.write(domain, OUTPUT_STREAM, force=True)
            for block in domain.blocks:
                time_average.reset(block)

    # ---------- time loop ----------
    @abort_on_error
    def run(self) -> None:
        domain = self.domain
        clock = domain.clock
        streams = domain.streams
        while not clock.is_stop_time():
            streams.read(domain)
            streams.reset_alarms(direction="input")

            clock.advance()
            for block in domain.blocks:
                build_forcing_arrays(block, self.forcing_params, 1)
                build_fraction_absorbed_array(block, self.forcing_params, 1)

            self.integrator.step(domain, clock.dt, clock.timestamp)
            domain.shift_time_levels()
            for block in domain.blocks:
                time_average.accumulate(block)

            self.analysis.compute(domain, 1).raise_if_any("Analysis compute failed")
            self.analysis.write(domain).raise_if_any("Analysis write failed")

            self._write_output()
            self._write_restart()

            streams.write(domain)
            streams.reset_alarms(direction="output")
            self.logger.debug("[Run] step %d done at %s", clock.step_count, clock.timestamp)

        self.logger.info("[Run] Reached stop time %s after %d steps", clock.timestamp, clock.step_count)

    def _write_output(self) -> None:
        domain = self.domain
        streams = domain.streams
        if not streams.has_stream(OUTPUT_STREAM) or not streams.ringing_alarms(OUTPUT_STREAM, "output"):
            return
        for block in domain.blocks:
            time_average.normalize(block)
        streams.write(domain, OUTPUT_STREAM)
        for block in domain.blocks:
            time_average.reset(block)
        streams.reset_alarms(OUTPUT_STREAM, "output")

    def _write_restart(self) -> None:
        domain = self.domain
        streams = domain.streams
        if not streams.has_stream(RESTART_STREAM) or not streams.ringing_alarms(RESTART_STREAM, "output"):
            return
        self.analysis.restart(domain).raise_if_any("Analysis restart failed")
        streams.write(domain, RESTART_STREAM)
        if self.comm.rank == 0:
            marker = os.path.join(self.run_directory, self.config.get_config("config_restart_timestamp_name"))
            write_restart_timestamp(marker, domain.clock.timestamp)
        streams.reset_alarms(RESTART_STREAM, "output")

    # ---------- shutdown ----------
    @abort_on_error
    def finalize(self) -> None:
        domain = self.domain
        if domain is None:
            return
        if self.analysis is not None and domain.clock is not None:
            self.analysis.finalize(domain).raise_if_any("Analysis finalize failed")
        if domain.streams is not None:
            domain.streams.close()
        domain.clock = None
        self.logger.info("[Finalize] done")

    def invariants(self, time_level: int = 1) -> Invariants:
        return domain_invariants(self.domain, time_level)

    def state_array(self, name: str) -> np.ndarray:
        """Global (gathered) copy of a cell/edge field of the current state."""
        blocks = self.domain.blocks
        info = blocks[0].fields.info(blocks[0].fields.index(name))
        return gather_global(
            self.comm, [b.mesh for b in blocks], [b.fields.array(b.fields.index(name)) for b in blocks], info.location
        )
