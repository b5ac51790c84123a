from __future__ import annotations

from fastapi.testclient import TestClient

from md2slack.pipeline.operations import EDIT_ACTIONS
from md2slack.server.ui import render_homepage


def test_home_page_serves_html(client: TestClient) -> None:
    response = client.get("/")
    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "<title>md2slack Daily Report</title>" in response.text


def test_home_page_lists_edit_actions() -> None:
    page = render_homepage(app_name="md2slack")
    for action in EDIT_ACTIONS:
        assert f'data-action="{action}"' in page
    assert 'api("/state")' in page
