import pytest

from flow_wordcloud import TextStyle


class FakeSurface:
    """Records every call; each character is ``char_width`` * size wide."""

    def __init__(self, char_width=0.5):
        self.char_width = char_width
        self.calls = []

    def set_size(self, width, height):
        self.calls.append(("set_size", width, height))

    def clear(self, fill):
        self.calls.append(("clear", fill))

    def measure_width(self, text, style: TextStyle):
        return len(text) * style.size * self.char_width

    def draw_text(self, text, x, y, style, color):
        self.calls.append(("draw_text", text, x, y, style.size, color))

    @property
    def drawn(self):
        return [c for c in self.calls if c[0] == "draw_text"]


class FakeClock:
    """Integer-millisecond clock advanced by hand."""

    def __init__(self, start=1_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def fake_surface():
    return FakeSurface()


@pytest.fixture
def clock():
    return FakeClock()
