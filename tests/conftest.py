# tests/conftest.py
# -*- coding: utf-8 -*-
import os
import uuid
import tempfile
from decimal import Decimal

import pytest
from sqlalchemy import event

# config.py lê o ambiente no import: precisa vir antes de importar a app
os.environ["APP_ENV"] = "testing"
os.environ["FLASK_ENV"] = "testing"
os.environ["DISABLE_SCHEDULER"] = "1"
os.environ.setdefault("SECRET_KEY", "testing-secret")

from calc import FeeCalculator, CouponTerms  # noqa: E402
from edupay_app import create_app  # noqa: E402
from edupay_app.extensions import db  # noqa: E402
from edupay_app.models.base import utcnow  # noqa: E402
from fakes import FakeGateway, RecordingNotifier  # noqa: E402


def _set_sqlite_pragmas(dbapi_conn, _conn_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


# =====================================================================================
# App Flask com SQLite temporário e schema criado uma vez por sessão
# =====================================================================================
@pytest.fixture(scope="session")
def app():
    fd, db_path = tempfile.mkstemp(prefix="edupay_test_", suffix=".sqlite")
    os.close(fd)

    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "PAYMENT_PROVIDER": "fake",
        "MERCADOPAGO_ACCESS_TOKEN": "",
        "STRIPE_SECRET_KEY": "",
        "PLATFORM_FEE_PERCENT": "10",
        "REFUND_WINDOW_DAYS": 7,
        "BALANCE_HOLDING_DAYS": 30,
        "MIN_PAYOUT_AMOUNT": "50.00",
    })

    with app.app_context():
        event.listen(db.engine, "connect", _set_sqlite_pragmas)
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()
    try:
        os.remove(db_path)
    except OSError:
        pass


# =====================================================================================
# Limpeza: cada teste começa com tabelas vazias
# =====================================================================================
@pytest.fixture(autouse=True)
def _clean_tables(app):
    yield
    with app.app_context():
        db.session.rollback()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()


# =====================================================================================
# PSP e notificador falsos (sem rede)
# =====================================================================================
@pytest.fixture(autouse=True)
def fake_gateway(app):
    gw = FakeGateway()
    app.extensions["gateways"] = {"fake": gw}
    yield gw


@pytest.fixture(autouse=True)
def notifier(app):
    n = RecordingNotifier()
    app.extensions["notifier"] = n
    yield n


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    with app.app_context():
        try:
            yield db.session
        finally:
            db.session.rollback()
            db.session.close()


# =====================================================================================
# Factories
# =====================================================================================
@pytest.fixture
def make_user(db_session):
    from edupay_app.models import User

    def _make(role="STUDENT", is_admin=False, **kw):
        email = f"{role.lower()}+{uuid.uuid4().hex[:6]}@test.com"
        u = User(name=kw.pop("name", role.title()), email=email, role=role, is_admin=is_admin, **kw)
        db_session.add(u)
        db_session.commit()
        return u
    return _make


@pytest.fixture
def student(make_user):
    return make_user("STUDENT")


@pytest.fixture
def instructor(make_user):
    return make_user("INSTRUCTOR", name="Prof Ana")


@pytest.fixture
def admin_user(make_user):
    return make_user("ADMIN", is_admin=True)


@pytest.fixture
def verified_instructor(make_user):
    return make_user(
        "INSTRUCTOR",
        name="Prof Bia",
        full_name="Beatriz Souza",
        document_type="CPF",
        document_number="39053344705",
        pix_key="bia@test.com",
        payout_verified=True,
        verified_at=utcnow(),
    )


@pytest.fixture
def make_course(db_session, instructor):
    from edupay_app.models import Course

    def _make(price="100.00", instructor_id=None, **kw):
        c = Course(
            title=kw.pop("title", "Python do zero"),
            price=Decimal(price),
            instructor_id=instructor_id or instructor.id,
            **kw,
        )
        db_session.add(c)
        db_session.commit()
        return c
    return _make


@pytest.fixture
def course(make_course):
    return make_course()


@pytest.fixture
def make_coupon(db_session):
    from edupay_app.models import Coupon

    def _make(code="PROMO10", discount_type="PERCENTAGE", discount_value="10", **kw):
        c = Coupon(code=code.upper(), discount_type=discount_type, discount_value=Decimal(discount_value), **kw)
        db_session.add(c)
        db_session.commit()
        return c
    return _make


@pytest.fixture
def make_payment(db_session):
    """PaymentRecord já com os valores calculados (taxa 10%)."""
    from edupay_app.models import PaymentRecord

    def _make(user, course, status="PENDING", coupon=None, provider="fake",
              external_id="auto", method="PIX", created_at=None, **kw):
        terms = CouponTerms(coupon.discount_type, Decimal(coupon.discount_value)) if coupon else None
        b = FeeCalculator("10").calculate(Decimal(course.price), terms)
        if external_id == "auto":
            external_id = f"ext_{uuid.uuid4().hex[:10]}"
        p = PaymentRecord(
            user_id=user.id,
            course_id=course.id,
            instructor_id=course.instructor_id,
            external_payment_id=external_id,
            amount=b.total,
            original_amount=b.original,
            discount_amount=b.discount,
            platform_fee_amount=b.platform_fee,
            instructor_amount=b.instructor_amount,
            currency="BRL",
            coupon_id=coupon.id if coupon else None,
            status=status,
            payment_method=method,
            gateway_provider=provider,
            created_at=created_at or utcnow(),
            **kw,
        )
        db_session.add(p)
        db_session.commit()
        return p
    return _make


@pytest.fixture
def pending_payment(make_payment, student, course, fake_gateway):
    p = make_payment(student, course)
    fake_gateway.statuses[p.external_payment_id] = fake_gateway.next_create_status
    return p


# =====================================================================================
# Clientes logados
# =====================================================================================
def _login(client, user, is_admin=False):
    with client.session_transaction() as sess:
        sess["user"] = {"id": user.id, "email": user.email, "is_admin": is_admin}
    return client


@pytest.fixture
def logged_client_user(client, student):
    return _login(client, student)


@pytest.fixture
def logged_client_admin(client, admin_user):
    return _login(client, admin_user, is_admin=True)


@pytest.fixture
def logged_client_instructor(client, verified_instructor):
    return _login(client, verified_instructor)
