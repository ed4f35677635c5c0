import csv
import io

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from statichost.models.analytics import Hit
from statichost.models.site import Site
from statichost.routers.analytics import TRACKING_PIXEL

BROWSER = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/124.0 Safari/537.36"


class TestTracking:
    def test_pixel(self, client: TestClient, session: Session, published_site: Site):
        response = client.get(
            f"/api/analytics/hit/{published_site.id_site}",
            params={"path": "/about.html", "country": "NL"},
            headers={"User-Agent": BROWSER, "X-Forwarded-For": "198.51.100.1, 10.0.0.1"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/gif"
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.content == TRACKING_PIXEL
        [hit] = session.exec(select(Hit)).all()
        assert hit.path == "/about.html"
        assert hit.country == "NL"
        assert hit.browser == "Chrome"

    def test_beacon(self, client: TestClient, session: Session, published_site: Site):
        response = client.post(
            f"/api/analytics/hit/{published_site.id_site}",
            content='{"url": "https://x.example/docs", "load_time": 120}',
            headers={"Content-Type": "text/plain", "User-Agent": BROWSER},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "recorded": True}
        hit = session.exec(select(Hit)).one()
        assert hit.path == "/docs"
        assert hit.load_time == 120

    def test_beacon_for_inactive_site(self, client: TestClient, site: Site):
        response = client.post(f"/api/analytics/hit/{site.id_site}", json={})
        assert response.status_code == 200
        assert response.json() == {"success": True, "recorded": False}

    def test_beacon_with_garbage_body(self, client: TestClient, published_site: Site):
        response = client.post(f"/api/analytics/hit/{published_site.id_site}", content=b"\xff{oops")
        assert response.status_code == 200
        assert response.json()["recorded"] is True

    def test_preflight(self, client: TestClient, published_site: Site):
        response = client.options(f"/api/analytics/hit/{published_site.id_site}")
        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == "*"

    def test_tracking_script(self, client: TestClient):
        response = client.get("/api/analytics/script.js")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/javascript")
        assert response.headers["access-control-allow-origin"] == "*"
        assert "data-site-id" in response.text
        assert "/api/analytics/hit/" in response.text


class TestReports:
    def _track(self, client: TestClient, site: Site, count: int = 1):
        for i in range(count):
            client.post(
                f"/api/analytics/hit/{site.id_site}",
                json={"path": f"/page-{i % 2}", "country": "FR"},
                headers={"User-Agent": BROWSER, "X-Forwarded-For": f"203.0.113.{i}"},
            )

    def test_report(self, client: TestClient, user_headers, published_site: Site):
        self._track(client, published_site, 3)

        response = client.get(
            f"/api/analytics/site/{published_site.id_site}/daily",
            params={"days": 7},
            headers=user_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["analytics"]) == 7
        assert data["analytics"][-1]["hits"] == 3
        assert data["summary"]["today"]["hits"] == 3
        assert data["breakdowns"]["countries"][0]["country"] == "FR"
        assert data["timeframe"]["group_by"] == "day"

    def test_days_out_of_range(self, client: TestClient, user_headers, published_site: Site):
        response = client.get(
            f"/api/analytics/site/{published_site.id_site}/daily",
            params={"days": 400},
            headers=user_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Days must be between 1 and 365"

    def test_other_user_is_refused(
        self, client: TestClient, published_site: Site, other_user, headers_for
    ):
        response = client.get(
            f"/api/analytics/site/{published_site.id_site}/summary",
            headers=headers_for(other_user),
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Unauthorized access to analytics"

    def test_admin_can_read(self, client: TestClient, admin_headers, published_site: Site):
        response = client.get(
            f"/api/analytics/site/{published_site.id_site}/summary", headers=admin_headers
        )
        assert response.status_code == 200
        assert set(response.json()) == {"dashboard", "period"}

    def test_breakdown_endpoints(self, client: TestClient, user_headers, published_site: Site):
        self._track(client, published_site, 4)
        base = f"/api/analytics/site/{published_site.id_site}"

        pages = client.get(f"{base}/pages", headers=user_headers).json()
        assert {p["path"] for p in pages} == {"/page-0", "/page-1"}
        devices = client.get(f"{base}/devices", headers=user_headers).json()
        assert devices == [{"label": "desktop", "count": 4, "percentage": 100.0}]
        browsers = client.get(f"{base}/browsers", headers=user_headers).json()
        assert browsers[0]["browser"] == "Chrome"
        assert client.get(f"{base}/countries", headers=user_headers).json()[0]["hits"] == 4
        assert client.get(f"{base}/sources", headers=user_headers).json() == []
        assert len(client.get(f"{base}/realtime", headers=user_headers).json()) == 4

    def test_export_csv(self, client: TestClient, user_headers, published_site: Site):
        self._track(client, published_site, 2)
        response = client.get(
            f"/api/analytics/site/{published_site.id_site}/export", headers=user_headers
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="analytics-my-site-' in response.headers["content-disposition"]
        assert len(list(csv.DictReader(io.StringIO(response.text)))) == 2

    def test_export_unknown_format(self, client: TestClient, user_headers, published_site: Site):
        response = client.get(
            f"/api/analytics/site/{published_site.id_site}/export",
            params={"format": "xml"},
            headers=user_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Unsupported export format: xml"
