"""Callback utilities for the iterative correction algorithms."""

import logging
from pathlib import Path
from typing import Optional

import numpy as np

LOGGER = logging.getLogger(__name__)


class Callback:
    """Called by :meth:`Algorithm.run` after every iteration."""

    def __call__(self, algorithm) -> None:
        pass


class RegionalRatioCallback(Callback):
    """
    Report the regional ratios (observed mean / blurred estimate mean) of an
    Iterative Yang run.

    Parameters
    ----------
    interval : int, optional
        Report every N iterations (default: 1)
    output_file : str or Path, optional
        If given, ratios are also written to this CSV file
    level : int, optional
        Logging level of the report (default: logging.INFO)
    """

    def __init__(self, interval: int = 1, output_file: Optional[Path] = None, level: int = logging.INFO):
        super().__init__()
        self.interval = interval
        self.level = level
        self.history = []
        self.output_file = Path(output_file) if output_file is not None else None
        self._header_written = False

    def __call__(self, algorithm) -> None:
        if algorithm.iteration % self.interval != 0:
            return

        ratios = np.asarray(algorithm.ratios, dtype=np.float64)
        self.history.append((algorithm.iteration, ratios.copy()))
        LOGGER.log(
            self.level,
            "Iteration %d: regional ratios %s",
            algorithm.iteration,
            np.array2string(ratios, precision=6),
        )

        if self.output_file is None:
            return
        if not self._header_written:
            self.output_file.parent.mkdir(parents=True, exist_ok=True)
            columns = ",".join(f"region_{j + 1}" for j in range(ratios.size))
            with open(self.output_file, 'w') as f:
                f.write(f"iteration,{columns}\n")
            self._header_written = True
        with open(self.output_file, 'a') as f:
            values = ",".join(f"{r:.8e}" for r in ratios)
            f.write(f"{algorithm.iteration},{values}\n")


class SaveIterationCallback(Callback):
    """
    Callback to save the estimate at specific iterations.

    Parameters
    ----------
    output_dir : str or Path
        Directory to save iteration files
    interval : int
        Save every N iterations
    prefix : str, optional
        Prefix for saved filenames (default: "iter")
    save_first_n : int, optional
        Save the first N iterations (default: 5)
    """

    def __init__(
        self,
        output_dir: Path,
        interval: int = 10,
        prefix: str = "iter",
        save_first_n: int = 5,
    ):
        super().__init__()
        self.output_dir = Path(output_dir)
        self.interval = interval
        self.prefix = prefix
        self.save_first_n = save_first_n
        self.saved = []

        self.output_dir.mkdir(parents=True, exist_ok=True)

    def __call__(self, algorithm) -> None:
        """Save current solution at specified intervals."""
        # Save first N iterations (1, 2, 3, ...)
        if algorithm.iteration <= self.save_first_n:
            should_save = True
        # Then save at regular intervals (10, 20, 30...)
        elif algorithm.iteration % self.interval == 0:
            should_save = True
        else:
            should_save = False

        if not should_save:
            return

        from petpvc.utils import save_image

        output_path = self.output_dir / f"{self.prefix}_{algorithm.iteration:04d}.nii.gz"
        save_image(algorithm.solution, output_path)
        self.saved.append(output_path)
