"""네트워크 없이 쓸 수 있는 번들 저장소 목록과 스니펫."""

import random

from snippet_sieve.models import CodeSnippet, SnippetMetrics

# 신규/트렌딩 저장소를 못 구했을 때 쓰는 저장소
POPULAR_REPOSITORIES: list[str] = [
    # 잘 알려진 저장소
    "facebook/react",
    "vercel/next.js",
    "microsoft/vscode",
    "nodejs/node",
    "microsoft/TypeScript",
    "angular/angular",
    "vuejs/vue",
    "golang/go",
    "rust-lang/rust",
    "python/cpython",
    # 최근 주목받는 저장소
    "sveltejs/svelte",
    "denoland/deno",
    "tauri-apps/tauri",
    "supabase/supabase",
    "withastro/astro",
    "remix-run/remix",
    "shadcn-ui/ui",
    "vercel/turbo",
    "oven-sh/bun",
    "neovim/neovim",
    "helix-editor/helix",
    "zed-industries/zed",
    "microsoft/playwright",
    "vitest-dev/vitest",
    "pnpm/pnpm",
    "biomejs/biome",
    # 흥미로운 저장소
    "anuraghazra/github-readme-stats",
    "novuhq/novu",
    "calcom/cal.com",
    "appwrite/appwrite",
    "n8n-io/n8n",
    "mattermost/mattermost",
    "outline/outline",
    "logseq/logseq",
    "immich-app/immich",
]

_STATIC_METRICS = SnippetMetrics(
    complexity=5,
    code_smells=0,
    interesting_patterns=3,
    educational_value=2,
    potential_issues=0,
)


def _static(
    repository: str,
    file_path: str,
    language: str,
    start_line: int,
    content: str,
    author: str,
    author_login: str,
) -> CodeSnippet:
    end_line = start_line + len(content.split("\n")) - 1
    return CodeSnippet(
        repository=repository,
        file_path=file_path,
        content=content,
        language=language,
        start_line=start_line,
        end_line=end_line,
        url=f"https://github.com/{repository}/blob/main/{file_path}#L{start_line}-L{end_line}",
        score=10,
        metrics=_STATIC_METRICS,
        commit_author=author,
        commit_author_login=author_login,
    )


STATIC_SNIPPETS: list[CodeSnippet] = [
    _static(
        "lodash/lodash",
        "debounce.js",
        "javascript",
        64,
        """function debounce(func, wait, options) {
  let lastArgs, lastThis, maxWait, result, timerId, lastCallTime
  let lastInvokeTime = 0
  let leading = false
  let maxing = false
  let trailing = true

  if (typeof func !== 'function') {
    throw new TypeError('Expected a function')
  }
  wait = +wait || 0
  if (isObject(options)) {
    leading = !!options.leading
    maxing = 'maxWait' in options
    maxWait = maxing ? Math.max(+options.maxWait || 0, wait) : maxWait
    trailing = 'trailing' in options ? !!options.trailing : trailing
  }

  function invokeFunc(time) {
    const args = lastArgs
    const thisArg = lastThis

    lastArgs = lastThis = undefined
    lastInvokeTime = time
    result = func.apply(thisArg, args)
    return result
  }""",
        "John-David Dalton",
        "jdalton",
    ),
    _static(
        "psf/requests",
        "src/requests/sessions.py",
        "python",
        159,
        """    def resolve_redirects(
        self,
        resp,
        req,
        stream=False,
        timeout=None,
        verify=True,
        cert=None,
        proxies=None,
        yield_requests=False,
        **adapter_kwargs,
    ):
        \"\"\"Receives a Response. Returns a generator of Responses or Requests.\"\"\"

        hist = []  # keep track of history

        url = self.get_redirect_target(resp)
        previous_fragment = urlparse(req.url).fragment
        while url:
            prepared_request = req.copy()

            # Update history and keep track of redirects.
            # resp.history must ignore the original request in this loop
            hist.append(resp)
            resp.history = hist[1:]

            try:
                resp.content  # Consume socket so it can be released
            except (ChunkedEncodingError, ContentDecodingError, RuntimeError):
                resp.raw.read(decode_content=False)

            if len(resp.history) >= self.max_redirects:
                raise TooManyRedirects(
                    f"Exceeded {self.max_redirects} redirects.", response=resp
                )""",
        "Kenneth Reitz",
        "kennethreitz",
    ),
    _static(
        "golang/go",
        "src/sync/once.go",
        "go",
        47,
        """func (o *Once) Do(f func()) {
	// Note: Here is an incorrect implementation of Do:
	//
	//	if o.done.CompareAndSwap(0, 1) {
	//		f()
	//	}
	//
	// Do guarantees that when it returns, f has finished.
	// This implementation would not implement that guarantee:
	// given two simultaneous calls, the winner of the cas would
	// call f, and the second would return immediately, without
	// waiting for the first's call to f to complete.
	// This is why the slow path falls back to a mutex, and why
	// the o.done.Store must be delayed until after f returns.

	if o.done.Load() == 0 {
		// Outlined slow-path to allow inlining of the fast-path.
		o.doSlow(f)
	}
}

func (o *Once) doSlow(f func()) {
	o.m.Lock()
	defer o.m.Unlock()
	if o.done.Load() == 0 {
		defer o.done.Store(1)
		f()
	}
}""",
        "Russ Cox",
        "rsc",
    ),
]


def random_static_snippet(rng: random.Random | None = None) -> CodeSnippet:
    """번들 스니펫 하나를 무작위로 고른다."""
    return (rng or random).choice(STATIC_SNIPPETS)


def static_snippets(count: int, rng: random.Random | None = None) -> list[CodeSnippet]:
    """중복 없이 번들 스니펫을 최대 count개 고른다."""
    pool = list(STATIC_SNIPPETS)
    (rng or random).shuffle(pool)
    return pool[:count]
