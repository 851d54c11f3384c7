"""Iteration protocol shared by the iterative correction algorithms."""


class Algorithm:
    """
    Minimal iterative algorithm driver.

    Subclasses implement :meth:`update`; :meth:`run` performs a fixed number
    of updates and calls each callback with the algorithm after every one.
    ``iteration`` counts completed updates.
    """

    def __init__(self, **kwargs):
        self.iteration = 0
        self.configured = False

    def update(self):
        raise NotImplementedError

    def run(self, iterations, callbacks=None):
        if iterations < 0:
            raise ValueError(f"Number of iterations must be non-negative, got {iterations}")
        for _ in range(iterations):
            self.update()
            self.iteration += 1
            for callback in callbacks or ():
                callback(self)
        return self
