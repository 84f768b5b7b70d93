"""
Health endpoint, error envelope, CORS and CLI tests.
"""

from crm.constants import UserRole
from crm.models import User
from crm.routes import system as system_routes


class TestHealth:

    def test_health_ok(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["status"] == "ok"
        assert data["database"] == "healthy"
        assert data["timestamp"].endswith("Z")

    def test_unhealthy_database_is_503(self, client, db_session, monkeypatch):
        monkeypatch.setattr(system_routes, "check_database_health", lambda: {"status": "unhealthy", "latency_ms": 0})
        resp = client.get("/api/health")
        assert resp.status_code == 503
        assert resp.json["database"] == "unhealthy"


class TestErrorEnvelope:

    def test_unknown_route(self, client, db_session):
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        assert resp.json == {
            "success": False,
            "error": "接口不存在",
            "errorCode": "NOT_FOUND",
            "timestamp": resp.json["timestamp"],
        }

    def test_wrong_method(self, client, db_session):
        resp = client.delete("/api/health")
        assert resp.status_code == 405
        assert resp.json["success"] is False

    def test_chinese_messages_are_not_escaped(self, client, db_session):
        resp = client.get("/api/does-not-exist")
        assert "接口不存在" in resp.get_data(as_text=True)


class TestCors:

    def test_allowed_origin_is_echoed(self, client, db_session):
        resp = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        assert "Idempotency-Key" in resp.headers["Access-Control-Allow-Headers"]

    def test_unknown_origin_gets_no_headers(self, client, db_session):
        resp = client.get("/api/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers

    def test_preflight(self, client, db_session):
        resp = client.options("/api/customers", headers={"Origin": "http://localhost:5173"})
        assert resp.status_code == 204


class TestCli:

    def test_init_admin_creates_super_admin_once(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init-admin"])
        assert result.exit_code == 0
        assert "PASS Created super admin: admin" in result.output
        assert db_session.query(User).filter_by(role=UserRole.SUPER_ADMIN).count() == 1

        result = runner.invoke(args=["system", "init-admin"])
        assert result.exit_code == 0
        assert "already exists" in result.output
        assert db_session.query(User).filter_by(role=UserRole.SUPER_ADMIN).count() == 1

    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()
        for _ in range(2):
            result = runner.invoke(args=["system", "init"])
            assert result.exit_code == 0
        assert db_session.query(User).count() == 1

    def test_reset_db_requires_confirmation(self, app, db_session, admin_user):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["system", "reset-db"], input="n\n")
        assert result.exit_code != 0
        assert db_session.query(User).count() == 1
