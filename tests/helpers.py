from pathlib import Path


class FakeClock:
    """Monotonic clock the test moves by hand"""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def append(path: Path, data: bytes):
    with open(path, "ab") as f:
        f.write(data)
