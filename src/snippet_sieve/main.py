"""CLI 엔트리포인트."""

import asyncio
import logging
import random
from collections.abc import Coroutine
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.syntax import Syntax
from rich.table import Table

from snippet_sieve.acquisition import SnippetAcquirer
from snippet_sieve.analysis.extractor import detect_language, extract_sections
from snippet_sieve.analysis.scoring import choose_span, score_span
from snippet_sieve.config import Settings, settings
from snippet_sieve.models import BatchResult, CodeSnippet
from snippet_sieve.ratelimit import RateLimitTracker
from snippet_sieve.scheduler import SnippetScheduler
from snippet_sieve.sources.github import GitHubClient
from snippet_sieve.sources.locator import SourceLocator
from snippet_sieve.storage.snippet_cache import SnippetCache

console = Console()

T = TypeVar("T")

app = typer.Typer(
    name="snippet-sieve",
    help="GitHub 저장소에서 리뷰할 만한 코드 스니펫을 골라 보여줍니다.",
    no_args_is_help=True,
)


@app.callback()
def configure(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="진행 로그를 출력합니다."),
    ] = False,
) -> None:
    """로깅을 설정한다."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_cache(config: Settings) -> SnippetCache:
    """설정으로 디스크 캐시를 만들고 읽어 온다."""
    cache = SnippetCache(
        capacity=config.cache_capacity,
        directory=config.cache_dir,
        ttl_seconds=config.cache_ttl_days * 24 * 60 * 60,
    )
    cache.load()
    return cache


def build_scheduler(
    config: Settings,
    client: GitHubClient,
    fast_mode: bool = False,
    fallback_to_static: bool = False,
) -> SnippetScheduler:
    """설정으로 획득기와 스케줄러를 조립한다."""
    rng = random.Random()
    locator = SourceLocator(client, client.tracker)
    acquirer = SnippetAcquirer(
        client,
        locator,
        client.tracker,
        rng=rng,
        weights=config.scoring,
        limits=config.extraction,
        max_retries=config.max_retries,
        call_timeout=config.call_timeout,
        retry_delay=config.retry_delay,
        quota_retry_delay=config.quota_retry_delay,
        fast_mode=fast_mode,
    )
    return SnippetScheduler(
        acquirer,
        build_cache(config),
        client.tracker,
        low_water_mark=config.low_water_mark,
        preload_target=config.preload_target,
        batch_size=config.batch_size,
        min_preload_interval=config.min_preload_interval,
        max_preload_backoff=config.max_preload_backoff,
        max_preload_failures=config.max_preload_failures,
        batch_timeout=config.batch_timeout,
        call_timeout=config.call_timeout,
        fallback_to_static=fallback_to_static,
        rng=rng,
    )


def _client(config: Settings) -> GitHubClient:
    return GitHubClient(
        token=config.github_token,
        tracker=RateLimitTracker(),
        base_url=config.github_api_base,
        timeout=config.request_timeout,
    )


def _render_snippet(snippet: CodeSnippet, reasons: list[str] | None = None) -> None:
    """스니펫 하나를 Rich로 렌더링한다."""
    header = f"[bold]{snippet.repository}[/bold]  [dim]|[/dim]  {snippet.file_path}"
    console.print(
        Panel(
            Syntax(
                snippet.content,
                snippet.language,
                theme="monokai",
                line_numbers=True,
                start_line=snippet.start_line,
                word_wrap=True,
            ),
            title=header,
            subtitle=f"[dim]L{snippet.start_line}-L{snippet.end_line}[/dim]",
            border_style="blue",
        )
    )

    details = [f"🔗 {snippet.url}"]
    if snippet.score is not None:
        details.append(f"점수: {snippet.score}")
    if snippet.metrics:
        m = snippet.metrics
        details.append(
            f"복잡도 {m.complexity} · 스멜 {m.code_smells} · 패턴 {m.interesting_patterns}"
            f" · 이슈 {m.potential_issues} · 교육 {m.educational_value}"
        )
    if snippet.commit_author:
        details.append(f"✍️ {snippet.commit_author} ({snippet.commit_author_login})")
    for reason in reasons or []:
        details.append(f"• {reason}")
    console.print("[dim]" + "\n".join(details) + "[/dim]")


def _render_batch(result: BatchResult) -> None:
    if not result.snippets:
        console.print("[yellow]가져온 스니펫이 없습니다.[/yellow]")
    else:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=3)
        table.add_column("저장소", style="bold")
        table.add_column("파일")
        table.add_column("언어", width=12)
        table.add_column("줄", justify="right", width=10)
        table.add_column("점수", justify="right", width=6)

        for i, snippet in enumerate(result.snippets, 1):
            table.add_row(
                str(i),
                f"[link={snippet.url}]{snippet.repository}[/link]",
                snippet.file_path,
                snippet.language,
                f"{snippet.start_line}-{snippet.end_line}",
                str(snippet.score if snippet.score is not None else "-"),
            )
        console.print(table)

    notes = [f"{result.elapsed_ms}ms"]
    if result.rate_limited:
        notes.append("[yellow]레이트 리밋 상태[/yellow]")
    if result.used_fallback:
        notes.append("번들 스니펫 포함")
    console.print("[dim]" + " · ".join(notes) + "[/dim]")


async def _next(fast: bool, offline: bool) -> CodeSnippet | None:
    async with _client(settings) as client:
        scheduler = build_scheduler(settings, client, fast_mode=fast, fallback_to_static=offline)
        try:
            return await scheduler.take_next()
        finally:
            await scheduler.aclose()


async def _batch(count: int, fill: bool, fast: bool) -> BatchResult:
    async with _client(settings) as client:
        scheduler = build_scheduler(settings, client)
        try:
            return await scheduler.take_batch(count, fill_with_static=fill, fast_mode=fast)
        finally:
            await scheduler.aclose()


async def _fill() -> tuple[int, int]:
    async with _client(settings) as client:
        scheduler = build_scheduler(settings, client)
        try:
            added = await scheduler.preload()
            return added, len(scheduler.cache)
        finally:
            await scheduler.aclose()


async def _status() -> dict[str, Any]:
    async with _client(settings) as client:
        data = await client.get_rate_limit()
        return data.get("resources", {})


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """코루틴을 실행하고 오류를 CLI 종료 코드로 바꾼다."""
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[dim]중단됨[/dim]")
        raise typer.Exit(0) from None
    except Exception as e:
        console.print(f"[red]오류 발생: {e}[/red]")
        raise typer.Exit(1) from e


@app.command("next")
def next_snippet(
    fast: Annotated[
        bool,
        typer.Option("--fast", help="분석 없이 파일 중간 블록을 가져옵니다."),
    ] = False,
    offline: Annotated[
        bool,
        typer.Option("--offline-fallback", help="실패하면 번들 스니펫을 보여줍니다."),
    ] = False,
) -> None:
    """스니펫 하나를 가져와 보여줍니다."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("스니펫 찾는 중...", total=None)
        snippet = _run(_next(fast, offline))

    if snippet is None:
        console.print("[yellow]스니펫을 찾지 못했습니다. 잠시 후 다시 시도하세요.[/yellow]")
        raise typer.Exit(1)
    _render_snippet(snippet)


@app.command()
def batch(
    count: Annotated[
        int,
        typer.Option("--count", "-n", min=1, max=20, help="가져올 스니펫 수"),
    ] = 5,
    fill: Annotated[
        bool,
        typer.Option("--fill", help="모자라면 번들 스니펫으로 채웁니다."),
    ] = False,
    fast: Annotated[
        bool,
        typer.Option("--fast", help="분석 없이 파일 중간 블록을 가져옵니다."),
    ] = False,
) -> None:
    """스니펫 여러 개를 점수 순으로 보여줍니다."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"스니펫 {count}개 가져오는 중...", total=None)
        result = _run(_batch(count, fill, fast))

    _render_batch(result)


@app.command()
def analyze(
    path: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, readable=True, help="분석할 로컬 파일"),
    ],
    language: Annotated[
        str | None,
        typer.Option("--lang", "-l", help="언어 (기본: 확장자로 추정)"),
    ] = None,
    seed: Annotated[
        int | None,
        typer.Option("--seed", help="구간 선택 난수 시드"),
    ] = None,
) -> None:
    """로컬 파일의 후보 구간과 점수를 보여줍니다."""
    content = path.read_text(encoding="utf-8", errors="replace")
    lines = content.split("\n")
    lang = language or detect_language(path.name)
    limits = settings.extraction

    spans = extract_sections(
        content, lang, min_lines=limits.min_section_lines, max_lines=limits.max_section_lines
    )
    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("구간", width=10)
    table.add_column("종류", width=9)
    table.add_column("점수", justify="right", width=6)
    table.add_column("근거")
    for span in spans:
        scored = score_span(lines, span, lang, settings.scoring)
        table.add_row(
            f"{scored.start}-{scored.end}",
            scored.kind.value,
            str(scored.score),
            "\n".join(scored.reasons) or "-",
        )

    console.rule(f"[bold blue]{path.name}[/bold blue] [dim]({lang}, {len(lines)}줄)[/dim]")
    if spans:
        console.print(table)
    else:
        console.print("[dim]선언 구간이 없습니다. 슬라이딩 윈도로 고릅니다.[/dim]")

    chosen = choose_span(lines, lang, random.Random(seed), settings.scoring, limits)
    snippet = CodeSnippet(
        repository="local",
        file_path=str(path),
        content="\n".join(lines[chosen.start - 1 : chosen.end]),
        language=lang,
        start_line=chosen.start,
        end_line=chosen.end,
        url=path.resolve().as_uri(),
        score=chosen.score,
        metrics=chosen.metrics,
    )
    _render_snippet(snippet, chosen.reasons)


@app.command("fill")
def fill_cache() -> None:
    """캐시를 목표 크기까지 미리 채웁니다."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("캐시 채우는 중...", total=None)
        added, size = _run(_fill())

    console.print(f"[green]✓[/green] {added}개 추가 (캐시 {size}개)")


@app.command()
def status(
    offline: Annotated[
        bool,
        typer.Option("--offline", help="API 한도 조회를 건너뜁니다."),
    ] = False,
) -> None:
    """API 한도와 캐시 상태를 보여줍니다."""
    cache = build_cache(settings)
    stats = cache.stats

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("항목")
    table.add_column("값", justify="right")
    table.add_row("캐시 스니펫", f"{len(cache)}/{cache.capacity}")
    table.add_row("적중", str(stats.hits))
    table.add_row("실패", str(stats.misses))
    console.print(table)

    if offline:
        return

    resources = _run(_status())
    limits = Table(show_header=True, header_style="bold cyan")
    limits.add_column("리소스")
    limits.add_column("남음", justify="right")
    limits.add_column("한도", justify="right")
    limits.add_column("초기화", justify="right")
    for name in ("core", "search"):
        info = resources.get(name)
        if not info:
            continue
        limits.add_row(
            name,
            str(info.get("remaining")),
            str(info.get("limit")),
            str(info.get("reset")),
        )
    console.print(limits)


@app.command()
def clear() -> None:
    """캐시를 비웁니다."""
    cache = build_cache(settings)
    cache.clear()
    console.print("[green]✓[/green] 캐시를 비웠습니다.")


if __name__ == "__main__":
    app()
