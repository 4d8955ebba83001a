"""Wire tests for the upstream API clients using httpx.MockTransport."""

import json

import httpx
import pytest

from services.buttondown_client import ButtondownClient
from services.firecrawl_client import FirecrawlClient
from services.github_client import GitHubClient
from services.kalshi_client import KalshiClient
from services.polymarket_client import GammaClient
from services.socrata_client import SocrataClient
from services.virlo_client import VirloClient


class Recorder:
    """MockTransport handler that records requests and replies with canned JSON."""

    def __init__(self, body=None, status: int = 200):
        self.body = body if body is not None else {}
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


class TestGitHubClient:

    @pytest.mark.asyncio
    async def test_get_commits(self):
        recorder = Recorder([{"sha": "abc"}])
        client = GitHubClient(transport=recorder.transport)

        commits = await client.get_commits("VirloGit/monitormamdani")

        assert commits == [{"sha": "abc"}]
        assert recorder.last.url.path == "/repos/VirloGit/monitormamdani/commits"
        assert recorder.last.url.params["per_page"] == "20"
        assert recorder.last.headers["accept"] == "application/vnd.github.v3+json"
        assert recorder.last.headers["user-agent"] == "MonitorMamdani-Changelog"

    @pytest.mark.asyncio
    async def test_non_list_rejected(self):
        client = GitHubClient(transport=Recorder({"message": "Not Found"}).transport)
        with pytest.raises(ValueError):
            await client.get_commits("x/y")

    @pytest.mark.asyncio
    async def test_http_error_raised(self):
        client = GitHubClient(transport=Recorder({"message": "Not Found"}, status=404).transport)
        with pytest.raises(httpx.HTTPStatusError):
            await client.get_commits("x/y")


class TestMarketClients:

    @pytest.mark.asyncio
    async def test_gamma_events_query(self):
        recorder = Recorder([])
        await GammaClient(transport=recorder.transport).get_events(limit=100)

        params = recorder.last.url.params
        assert recorder.last.url.path == "/events"
        assert params["closed"] == "false"
        assert params["limit"] == "100"
        assert params["ascending"] == "false"

    @pytest.mark.asyncio
    async def test_gamma_event_by_slug(self):
        recorder = Recorder({"id": "1"})
        event = await GammaClient(transport=recorder.transport).get_event_by_slug("some-slug")
        assert event == {"id": "1"}
        assert recorder.last.url.path == "/events/slug/some-slug"

    @pytest.mark.asyncio
    async def test_kalshi_paths_keep_base_prefix(self):
        recorder = Recorder({"markets": [], "cursor": None})
        client = KalshiClient(transport=recorder.transport)

        await client.get_markets(limit=1000, cursor="abc")
        assert recorder.last.url.path == "/trade-api/v2/markets"
        assert recorder.last.url.params["cursor"] == "abc"

        await client.get_market("KXNYCRENTFREEZE-27JAN01")
        assert recorder.last.url.path == "/trade-api/v2/markets/KXNYCRENTFREEZE-27JAN01"

        await client.get_events()
        assert recorder.last.url.params["status"] == "open"
        assert recorder.last.url.params["limit"] == "200"

    @pytest.mark.asyncio
    async def test_kalshi_first_page_has_no_cursor(self):
        recorder = Recorder({"markets": []})
        await KalshiClient(transport=recorder.transport).get_markets()
        assert "cursor" not in recorder.last.url.params


class TestSocrataClient:

    @pytest.mark.asyncio
    async def test_soql_parameters(self):
        recorder = Recorder([{"agency": "NYPD"}])
        client = SocrataClient(transport=recorder.transport)

        rows = await client.query("erm2-nwe9", select="agency,count(*)", limit=50, order=None)

        assert rows == [{"agency": "NYPD"}]
        assert recorder.last.url.path == "/resource/erm2-nwe9.json"
        assert recorder.last.url.params["$select"] == "agency,count(*)"
        assert recorder.last.url.params["$limit"] == "50"
        assert "$order" not in recorder.last.url.params


class TestPaidClients:

    @pytest.mark.asyncio
    async def test_firecrawl_search(self):
        recorder = Recorder({"data": []})
        await FirecrawlClient("fc-key", transport=recorder.transport).search("Zohran Mamdani", limit=10)

        assert recorder.last.method == "POST"
        assert recorder.last.url.path == "/v1/search"
        assert recorder.last.headers["authorization"] == "Bearer fc-key"
        assert json.loads(recorder.last.content) == {"query": "Zohran Mamdani", "limit": 10}

    @pytest.mark.asyncio
    async def test_firecrawl_scrape(self):
        recorder = Recorder({"data": {"markdown": "# Platform"}})
        await FirecrawlClient("fc-key", transport=recorder.transport).scrape("https://example.com")

        payload = json.loads(recorder.last.content)
        assert payload["formats"] == ["markdown", "html"]
        assert payload["onlyMainContent"] is True
        assert payload["waitFor"] == 2000

    @pytest.mark.asyncio
    async def test_virlo_comet_videos(self):
        recorder = Recorder({"data": []})
        await VirloClient("v-key", transport=recorder.transport).get_comet_videos("c1")

        assert recorder.last.url.path == "/comet/c1/videos"
        assert recorder.last.url.params["orderBy"] == "views"
        assert recorder.last.url.params["orderDirection"] == "desc"
        assert recorder.last.headers["authorization"] == "Bearer v-key"

    @pytest.mark.asyncio
    async def test_buttondown_subscribe_returns_conflict(self):
        recorder = Recorder({"detail": "exists"}, status=409)
        client = ButtondownClient("b-key", transport=recorder.transport)

        status, data = await client.subscribe("a@b.co", ["weekly_digest"])

        assert status == 409
        assert data == {"detail": "exists"}
        assert recorder.last.headers["authorization"] == "Token b-key"
        assert json.loads(recorder.last.content) == {"email": "a@b.co", "tags": ["weekly_digest"]}

    @pytest.mark.asyncio
    async def test_buttondown_send_email(self):
        recorder = Recorder({"id": "em_1"})
        client = ButtondownClient("b-key", transport=recorder.transport)

        email = await client.send_email("Subject", "Body", ["breaking_alerts"])

        assert email == {"id": "em_1"}
        payload = json.loads(recorder.last.content)
        assert payload["email_type"] == "public"
        assert payload["tags"] == ["breaking_alerts"]

    @pytest.mark.asyncio
    async def test_buttondown_send_failure_raises(self):
        client = ButtondownClient("b-key", transport=Recorder({"detail": "bad"}, status=400).transport)
        with pytest.raises(httpx.HTTPStatusError):
            await client.send_email("s", "b", [])
