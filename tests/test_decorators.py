# tests/test_decorators.py
def test_login_required_returns_401(client, db_session):
    resp = client.get("/payments")
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "unauthorized"


def test_admin_required_blocks_non_admin(logged_client_user, db_session):
    resp = logged_client_user.get("/admin/payments/stuck")
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "forbidden"


def test_instructor_required_checks_role(logged_client_user, db_session):
    # aluno logado não enxerga o saldo de instrutor
    resp = logged_client_user.get("/instructor/transactions")
    assert resp.status_code == 403


def test_instructor_required_with_unknown_user(client, db_session):
    with client.session_transaction() as sess:
        sess["user"] = {"id": 999999, "is_admin": False}
    assert client.get("/instructor/balance").status_code == 403
