# tests/test_results.py
from edupay_app.errors import IneligibleOperation
from edupay_app.services.results import Result


def test_failure_defaults_to_ineligible_operation():
    res = Result.failure("Fora da janela de reembolso")
    assert res.ok is False
    assert res.status == IneligibleOperation.status_code == 422
    assert res.code == "ineligible_operation"


def test_not_found_and_forbidden():
    assert Result.not_found("Sumiu").status == 404
    res = Result.forbidden()
    assert (res.status, res.code) == (403, "forbidden")
