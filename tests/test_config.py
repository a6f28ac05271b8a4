from krisha_scraper.config import ScraperConfig, clamp_page_budget


def test_defaults():
    config = ScraperConfig()
    assert config.workers == 12
    assert config.max_pages == 50
    assert config.retries == 2
    assert config.timeout == 30
    assert config.element_wait == 2
    assert config.deadline == 300
    assert config.webhook_url is None
    assert config.olx_base_url == "https://www.olx.kz"


def test_from_env(monkeypatch):
    monkeypatch.setenv("KRISHA_WORKERS", "6")
    monkeypatch.setenv("KRISHA_DEADLINE", "90")
    monkeypatch.setenv("KRISHA_RETRIES", "not-a-number")
    monkeypatch.setenv("KRISHA_WEBHOOK_URL", "https://hooks.example/krisha")
    monkeypatch.setenv("KRISHA_REPORT_PARTIAL", "1")
    monkeypatch.setenv("KRISHA_BASE_URL", "http://localhost:9000/")
    monkeypatch.setenv("KRISHA_OLX_BASE_URL", "http://localhost:9001/")
    config = ScraperConfig.from_env()
    assert config.workers == 6
    assert config.deadline == 90.0
    assert config.retries == 2
    assert config.webhook_url == "https://hooks.example/krisha"
    assert config.report_partial is True
    assert config.base_url == "http://localhost:9000"
    assert config.olx_base_url == "http://localhost:9001"


def test_gentle_profile():
    gentle = ScraperConfig().gentle()
    assert gentle.workers == 4
    assert gentle.deadline == 180
    assert ScraperConfig(workers=2).gentle().workers == 1


def test_clamp_page_budget():
    assert clamp_page_budget(None) == 1
    assert clamp_page_budget(0) == 1
    assert clamp_page_budget(5) == 5
    assert clamp_page_budget(99) == 10
