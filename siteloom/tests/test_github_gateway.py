"""Tests for the PyGithub gateway: read retries and single-shot writes."""

from unittest.mock import MagicMock, patch

import pytest
import requests
from github import GithubException, UnknownObjectException

from siteloom.core.errors import NotFoundError, UpstreamError
from siteloom.core.gateways.base import FileCommit, PullRequestParams
from siteloom.core.gateways.github_gateway import GitHubGateway


@pytest.fixture(autouse=True)
def no_backoff_sleep():
    with patch("time.sleep"):
        yield


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def repo(client):
    return client.get_repo.return_value


@pytest.fixture
def gateway(client):
    return GitHubGateway("acme/site", client=client, read_retries=3)


def _contents(path="src/index.html", text="<h1>Hi</h1>"):
    contents = MagicMock()
    contents.path = path
    contents.decoded_content = text.encode("utf-8")
    contents.sha = "abc123"
    return contents


class TestReads:

    def test_get_file_content(self, gateway, repo):
        repo.get_contents.return_value = _contents()

        result = gateway.get_file_content("src/index.html", "main")

        assert result.content == "<h1>Hi</h1>"
        assert result.sha == "abc123"
        repo.get_contents.assert_called_once_with("src/index.html", ref="main")

    def test_network_error_is_retried_then_succeeds(self, gateway, repo):
        repo.get_contents.side_effect = [requests.exceptions.ConnectionError("reset"), _contents()]

        assert gateway.get_file_content("src/index.html", "main").content == "<h1>Hi</h1>"
        assert repo.get_contents.call_count == 2

    def test_reads_stop_after_read_retries(self, gateway, repo):
        repo.get_contents.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(UpstreamError, match="Timeout"):
            gateway.get_file_content("src/index.html", "main")
        assert repo.get_contents.call_count == 3

    def test_server_errors_are_retried(self, gateway, repo):
        repo.get_contents.side_effect = GithubException(502)

        with pytest.raises(UpstreamError, match="502"):
            gateway.get_file_content("src/index.html", "main")
        assert repo.get_contents.call_count == 3

    def test_missing_file_is_not_retried(self, gateway, repo):
        repo.get_contents.side_effect = UnknownObjectException(404)

        with pytest.raises(NotFoundError):
            gateway.get_file_content("src/missing.html", "main")
        assert repo.get_contents.call_count == 1

    def test_search_code_retries_network_errors(self, gateway, client):
        hit = MagicMock(path="src/index.html", sha="abc123")
        client.search_code.side_effect = [requests.exceptions.ConnectionError("reset"), [hit]]

        hits = gateway.search_code("Welcome to Acme")

        assert [h.path for h in hits] == ["src/index.html"]
        assert client.search_code.call_count == 2
        assert "repo:acme/site" in client.search_code.call_args[0][0]


class TestWrites:

    def test_create_branch_failure_is_not_retried(self, gateway, repo):
        repo.get_branch.return_value.commit.sha = "deadbeefcafe"
        repo.create_git_ref.side_effect = requests.exceptions.ConnectionError("reset")

        with pytest.raises(UpstreamError):
            gateway.create_branch("content-update/x", "main")
        repo.create_git_ref.assert_called_once_with(ref="refs/heads/content-update/x", sha="deadbeefcafe")

    def test_commit_updates_existing_file(self, gateway, repo):
        repo.get_contents.return_value = _contents()

        gateway.commit_files("content-update/x", [FileCommit("src/index.html", "<h1>Hello</h1>", "Update hero")])

        repo.update_file.assert_called_once_with(
            "src/index.html", "Update hero", "<h1>Hello</h1>", "abc123", branch="content-update/x"
        )
        repo.create_file.assert_not_called()

    def test_commit_creates_missing_file(self, gateway, repo):
        repo.get_contents.side_effect = UnknownObjectException(404)

        gateway.commit_files("content-update/x", [FileCommit("src/new.html", "<p>New</p>", "Add page")])

        repo.create_file.assert_called_once_with("src/new.html", "Add page", "<p>New</p>", branch="content-update/x")

    def test_create_file_failure_becomes_upstream_error(self, gateway, repo):
        repo.get_contents.side_effect = UnknownObjectException(404)
        repo.create_file.side_effect = GithubException(422)

        with pytest.raises(UpstreamError, match="422"):
            gateway.commit_files("content-update/x", [FileCommit("src/new.html", "<p>New</p>", "Add page")])
        repo.create_file.assert_called_once()

    def test_open_pull_request(self, gateway, repo):
        repo.create_pull.return_value = MagicMock(number=7, html_url="https://github.com/acme/site/pull/7")

        ref = gateway.open_pull_request(PullRequestParams("Title", "Body", "content-update/x", "main"))

        assert (ref.number, ref.url) == (7, "https://github.com/acme/site/pull/7")

    def test_open_pull_request_failure_is_not_retried(self, gateway, repo):
        repo.create_pull.side_effect = GithubException(502)

        with pytest.raises(UpstreamError, match="502"):
            gateway.open_pull_request(PullRequestParams("Title", "Body", "content-update/x", "main"))
        repo.create_pull.assert_called_once()
