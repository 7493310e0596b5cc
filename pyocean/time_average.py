"""
Running means of surface fields between writes of the output stream.

accumulate() adds the start-of-step state after every shift, normalize()
turns the sums into means just before the output stream is written, and
reset() starts the next averaging window.
"""

from __future__ import annotations


def _fields(block):
    avg = block.averages
    state = block.state
    return (
        (avg.avg_ssh, lambda: state.ssh.level(1)),
        (avg.avg_surface_temperature, lambda: state.temperature.level(1)[:, 0]),
        (avg.avg_surface_salinity, lambda: state.salinity.level(1)[:, 0]),
        (avg.avg_kinetic_energy_surface, lambda: block.mesh.kinetic_energy(state.normal_velocity.level(1)[:, 0])),
    )


def reset(block) -> None:
    for arr, _ in _fields(block):
        arr[:] = 0.0
    block.averages.n_accumulated = 0


def accumulate(block) -> None:
    for arr, value in _fields(block):
        arr += value()
    block.averages.n_accumulated += 1


def normalize(block) -> None:
    n = block.averages.n_accumulated
    if n <= 0:
        return
    for arr, _ in _fields(block):
        arr /= float(n)
    # the arrays now hold means; a further normalize is a no-op
    block.averages.n_accumulated = 1
