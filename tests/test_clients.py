import pytest

from scorecard.clients import (
    BranchRef,
    Commit,
    Contributor,
    InternalError,
    PullRequest,
    Release,
    RepoClient,
    RepoUnavailableError,
    SearchRequest,
    SearchResponse,
)


class _FakeClient(RepoClient):
    def __init__(self):
        self.closed = False

    def init_repo(self, owner, repo):
        self.name = f"{owner}/{repo}"

    def url(self):
        return self.name

    def is_archived(self):
        return False

    def list_files(self, predicate):
        return [f for f in ["a", "b"] if predicate(f)]

    def get_file_content(self, filename):
        return filename.encode()

    def list_merged_prs(self):
        return []

    def get_default_branch(self):
        return BranchRef(name="main")

    def list_commits(self):
        return []

    def list_releases(self):
        return []

    def list_contributors(self):
        return []

    def search(self, request):
        return SearchResponse(hits=len(request.query))

    def close(self):
        self.closed = True


def test_repo_unavailable_message_and_cause():
    inner = ValueError("boom")
    err = RepoUnavailableError(inner)
    assert str(err) == "repo cannot be accessed: boom"
    assert err.inner is inner
    assert err.__cause__ is inner


def test_repo_unavailable_is_not_internal_error():
    err = RepoUnavailableError(ValueError("gone"))
    assert not isinstance(err, InternalError)
    assert str(err) == "repo cannot be accessed: gone"


def test_list_defaults_are_independent():
    first = PullRequest()
    second = PullRequest()
    first.labels.append("x")
    assert second.labels == []
    assert Release().assets == []
    assert Contributor().organizations == []


def test_nested_defaults():
    commit = Commit()
    assert commit.committed_date is None
    assert commit.committer.login == ""
    assert BranchRef().branch_protection_rule.required_approving_review_count == 0


def test_search_request_defaults_empty():
    request = SearchRequest(query="q")
    assert (request.filename, request.path) == ("", "")


def test_repo_client_is_abstract():
    with pytest.raises(TypeError):
        RepoClient()


def test_repo_client_context_manager_closes():
    with _FakeClient() as client:
        client.init_repo("owner", "repo")
        assert client.url() == "owner/repo"
        assert client.list_files(lambda f: f == "b") == ["b"]
        assert client.get_default_branch() == BranchRef(name="main")
        assert client.search(SearchRequest(query="abc")) == SearchResponse(hits=3)
        assert client.closed is False
    assert client.closed is True