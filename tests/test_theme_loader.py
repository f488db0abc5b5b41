from pathlib import Path

import pytest

pytest.importorskip("PySide6.QtWidgets")

from panchayatdb.ui.theme import loader


def _sheet(name):
    return (Path(loader.__file__).parent / name).read_text(encoding="utf-8").strip()


@pytest.mark.parametrize(
    ("dark_mode", "palette", "other"),
    [(False, "registry_light.qss", "registry_dark.qss"), (True, "registry_dark.qss", "registry_light.qss")],
)
def test_base_rules_come_before_the_selected_palette(dark_mode, palette, other):
    stylesheet = loader.stylesheet_for(dark_mode)

    assert stylesheet == _sheet("registry.qss") + "\n\n" + _sheet(palette)
    assert _sheet(other) not in stylesheet


def test_missing_palette_leaves_the_base_rules(monkeypatch):
    monkeypatch.setitem(loader._PALETTE_SHEETS, True, "missing.qss")

    assert loader.stylesheet_for(True) == _sheet("registry.qss")


def test_apply_records_the_mode_on_the_application():
    fake_app = _RecordingApp()

    loader.apply_app_theme(fake_app, dark_mode=True)

    assert fake_app.properties == {loader.DARK_MODE_PROPERTY: True}
    assert fake_app.stylesheet == loader.stylesheet_for(True)


class _RecordingApp:
    def __init__(self):
        self.properties = {}
        self.stylesheet = ""

    def setProperty(self, name, value):
        self.properties[name] = value

    def setStyleSheet(self, stylesheet):
        self.stylesheet = stylesheet
