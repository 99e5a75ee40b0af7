"""Events found while browsing the key projection: peaks and spaces."""


class KeyEvent:
    """Abscissa span [start, stop] in the projection."""

    kind = "Event"

    def __init__(self, start, stop):
        self.start = start
        self.stop = stop

    @property
    def width(self):
        return self.stop - self.start + 1

    @property
    def center(self):
        return (self.start + self.stop) / 2.0

    def as_dict(self):
        return {"kind": self.kind, "start": self.start, "stop": self.stop}

    def __repr__(self):
        return f"{self.kind}({self.start}-{self.stop})"


class Space(KeyEvent):
    """Columns whose projection stays below the space threshold."""

    kind = "Space"


class Peak(KeyEvent):
    """Columns whose projection exceeds the peak threshold, likely a stem."""

    kind = "Peak"

    def __init__(self, start, stop, height, invalid=False):
        super().__init__(start, stop)
        self.height = height
        self.invalid = invalid

    def set_invalid(self):
        self.invalid = True

    def as_dict(self):
        d = super().as_dict()
        d.update(height=self.height, invalid=self.invalid)
        return d

    def __repr__(self):
        flag = " invalid" if self.invalid else ""
        return f"Peak({self.start}-{self.stop} h:{self.height}{flag})"


def last_good_peak(peaks):
    """Last valid peak before the first invalid one, if any."""
    good = None
    for peak in peaks:
        if peak.invalid:
            break
        good = peak
    return good
