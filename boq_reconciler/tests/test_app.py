# boq_reconciler/tests/test_app.py

from pathlib import Path

from streamlit.testing.v1 import AppTest

from boq_reconciler.models import LineItem, StageForecast

APP = str(Path(__file__).resolve().parent.parent / "app.py")


def _app_with_stage():
    at = AppTest.from_file(APP, default_timeout=60)
    at.run()
    session = at.session_state["session"]
    session.add_document("a.csv", [LineItem("S1", "Concrete C20/25", "m3", 10, "a.csv", 2)])
    at.run()
    return at, session


def test_manual_forecast_edit_reaches_session():
    at, session = _app_with_stage()

    at.number_input(key="fc_S1").set_value(5000.0).run()

    assert session.forecasts == {"S1": 5000.0}


def test_loaded_forecasts_win_over_earlier_edit():
    at, session = _app_with_stage()
    at.number_input(key="fc_S1").set_value(5000.0).run()

    session.set_forecasts([StageForecast("S1", 9000.0)])
    at.run()
    at.run()

    assert session.forecasts == {"S1": 9000.0}
    assert at.number_input(key="fc_S1").value == 9000.0
