from scorecard.checks.details import Detail, DetailLogger, DetailType


def test_messages_are_formatted_and_ordered():
    dl = DetailLogger()
    dl.warn("unpinned dependency detected in %s: '%s'", "Dockerfile", "python:3")
    dl.info("plain")
    assert dl.details == [
        Detail(DetailType.WARN, "unpinned dependency detected in Dockerfile: 'python:3'"),
        Detail(DetailType.INFO, "plain"),
    ]


def test_counts_per_kind():
    dl = DetailLogger()
    dl.info("a")
    dl.debug("b")
    dl.debug("c")
    assert dl.count(DetailType.INFO) == 1
    assert dl.count(DetailType.DEBUG) == 2
    assert dl.count(DetailType.WARN) == 0


def test_percent_without_args_is_kept():
    dl = DetailLogger()
    dl.debug("100% done")
    assert dl.details[0].msg == "100% done"