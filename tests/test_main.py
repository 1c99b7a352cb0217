from types import SimpleNamespace
from unittest.mock import patch

import pytest

from docsheet import main
from docsheet.config import AppConfig, HeaderStrategy
from docsheet.models.extraction import BatchResult, BatchStatus


@pytest.fixture
def session():
    state = SimpleNamespace(config=AppConfig(), header_mapping=None, mapping_strategy=None)
    with patch.object(main.st, "session_state", state):
        yield state


RESULT = BatchResult(
    records=[{"Total": "10"}, {"Total": "20", "Notes": "late"}],
    status=BatchStatus.SUCCESS,
)


def test_mapping_follows_strategy_change(session):
    main.reset_header_mapping(RESULT.records, HeaderStrategy.FIRST_ROW)
    session.header_mapping.rename("Total", "Amount")

    assert main.current_header_mapping(RESULT).display_headers() == ["Amount"]

    session.config.header_strategy = HeaderStrategy.UNION
    mapping = main.current_header_mapping(RESULT)

    assert mapping.display_headers() == ["Total", "Notes"]
    assert session.mapping_strategy == HeaderStrategy.UNION


def test_clear_results_forgets_mapping(session):
    main.reset_header_mapping(RESULT.records, HeaderStrategy.FIRST_ROW)

    main.clear_results()

    assert session.header_mapping is None
    assert session.mapping_strategy is None
