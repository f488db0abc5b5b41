from panchayatdb.ui.widgets.citizen_table import CitizenTablePanel
from panchayatdb.ui.widgets.citizen_wizard import CitizenWizardPanel

__all__ = [
    "CitizenTablePanel",
    "CitizenWizardPanel",
]
