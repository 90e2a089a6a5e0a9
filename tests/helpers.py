"""Shared test data: HTML documents and a service wired for fast, offline tests."""

from __future__ import annotations

from typing import List, Optional

import httpx

from citescrape.history import HistoryEntry
from citescrape.scraper.cache import TTLCache
from citescrape.scraper.fetcher import Fetcher
from citescrape.scraper.gate import ConcurrencyGate
from citescrape.scraper.retry import RetryPolicy
from citescrape.search.searxng import SearxngClient
from citescrape.service import ContentService

SEARX_URL = "http://searx.test"

# No real sleeping; delays are still computed and can be inspected.
FAST_POLICY = RetryPolicy(max_attempts=3, base_delay=0.01, max_delay=0.05, total_budget=10.0)


ARTICLE_URL = "https://example.com/guides/asyncio"

ARTICLE_HTML = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <title>Understanding Async IO</title>
  <meta name="description" content="A practical guide to asyncio event loops.">
  <meta name="author" content="Jane Doe">
  <meta property="article:published_time" content="2024-03-01T10:00:00Z">
  <meta property="og:site_name" content="Example Guides">
  <meta property="og:image" content="/img/cover.png">
  <link rel="canonical" href="https://example.com/guides/asyncio">
</head>
<body>
  <header class="site-header"><a href="https://example.com/">Home</a></header>
  <nav class="main-nav">
    <a href="https://example.com/nav-link">Navigation Link</a>
  </nav>
  <article>
    <h1>Understanding Async IO</h1>
    <p>Asynchronous programming lets a single thread juggle many concurrent
       tasks by suspending work that waits on the network. Read the
       <a href="https://docs.python.org/3/library/asyncio.html">asyncio docs</a>
       for the full reference of every primitive mentioned here.</p>
    <h2>Event loops</h2>
    <p>The event loop schedules coroutines, runs callbacks and performs
       network operations. Each task runs until it awaits something, at which
       point the loop picks the next ready task, as the
       <a href="/guides/tasks">task guide</a> explains in more depth.</p>
    <pre><code class="language-python">import asyncio

async def main():
    await asyncio.sleep(1)</code></pre>
    <h2>Cancellation</h2>
    <p>Cancelling a task raises an exception inside the coroutine at its
       current suspension point, giving it a chance to release resources
       before the loop moves on to other work.</p>
    <img src="/img/loop.png" alt="Event loop diagram">
  </article>
  <aside class="sidebar"><a href="https://example.com/sidebar-link">Sidebar</a></aside>
  <footer><a href="https://example.com/footer-link">Footer Link</a></footer>
  <script>var tracking = "https://example.com/script-link";</script>
</body>
</html>
"""

# Read the Docs theme: the whole content column sits inside wrappers whose
# class names look like navigation chrome.
RTD_URL = "https://project.readthedocs.io/en/latest/configuration.html"

RTD_HTML = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <title>Configuration &mdash; Project 1.0 documentation</title>
  <meta name="generator" content="Docutils 0.18.1: http://docutils.sourceforge.net/">
</head>
<body class="wy-body-for-nav">
<div class="wy-grid-for-nav">
  <nav data-toggle="wy-nav-shift" class="wy-nav-side">
    <div class="wy-side-scroll"><a href="index.html">Project</a></div>
  </nav>
  <section data-toggle="wy-nav-shift" class="wy-nav-content-wrap">
    <div class="wy-nav-content">
      <div class="rst-content">
        <div role="navigation" aria-label="Page navigation">
          <ul class="wy-breadcrumbs"><li><a href="index.html">Docs</a></li></ul>
        </div>
        <div class="document" role="main" itemscope="itemscope">
          <div itemprop="articleBody">
            <section id="configuration">
              <h1>Configuration<a class="headerlink" href="#configuration">¶</a></h1>
              <p>Project reads its settings from a single file placed next to
                 the application. Every key is optional; see the
                 <a class="reference internal" href="options.html">options reference</a>
                 for defaults.</p>
              <div class="highlight-python notranslate"><div class="highlight"><pre>settings = load("project.toml")
settings.validate()</pre></div></div>
            </section>
          </div>
        </div>
      </div>
    </div>
  </section>
</div>
</body>
</html>
"""


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------

async def no_sleep(delay: float) -> None:
    return None


class FakeHistory:
    """In-memory history sink that can be told to fail."""

    def __init__(self, fail: bool = False, recent: Optional[HistoryEntry] = None) -> None:
        self.entries: List[HistoryEntry] = []
        self.fail = fail
        self.recent = recent

    async def record(self, entry: HistoryEntry) -> None:
        if self.fail:
            raise RuntimeError("history store is down")
        self.entries.append(entry)

    async def find_recent(self, query: str, within_hours: float = 6.0) -> Optional[HistoryEntry]:
        if self.fail:
            raise RuntimeError("history store is down")
        return self.recent


def make_service(
    client: httpx.AsyncClient,
    *,
    history=None,
    gate_limit: int = 8,
    scrape_cache: Optional[TTLCache] = None,
    search_cache: Optional[TTLCache] = None,
) -> ContentService:
    gate = ConcurrencyGate(gate_limit)
    return ContentService(
        client=client,
        gate=gate,
        scrape_cache=scrape_cache if scrape_cache is not None else TTLCache(60),
        search_cache=search_cache if search_cache is not None else TTLCache(60),
        fetcher=Fetcher(client, gate, policy=FAST_POLICY, sleep=no_sleep, clock=lambda: 0.0),
        searxng=SearxngClient(
            client, gate, base_url=SEARX_URL, policy=FAST_POLICY, sleep=no_sleep, clock=lambda: 0.0
        ),
        history=history,
    )


