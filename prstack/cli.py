import asyncio
import contextlib
from typing import Generator, List, Optional, Sequence, Tuple

import click

import prstack
import prstack.config
import prstack.github
import prstack.github_real
import prstack.github_utils
import prstack.land
import prstack.logs
import prstack.shell
import prstack.stack
import prstack.status
from prstack.pull_request import PullRequest

EXIT_STACK = contextlib.ExitStack()

PrstackContext = Tuple[
    prstack.shell.Shell,
    prstack.config.Config,
    prstack.github_real.RealGitHubEndpoint,
]


@contextlib.contextmanager
def cli_context(
    *,
    request_github_token: bool = True,
) -> Generator[PrstackContext, None, None]:
    with EXIT_STACK:
        shell = prstack.shell.Shell()
        config = prstack.config.read_config(request_github_token=request_github_token)
        github = prstack.github_real.RealGitHubEndpoint(
            oauth_token=config.github_oauth or "",
            github_url=config.github_url,
            api_base=config.api_base,
            proxy=config.proxy,
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
        )
        try:
            yield shell, config, github
        except prstack.land.LandExecutionError as e:
            raise click.ClickException(describe_execution_error(e))
        except prstack.land.LandError as e:
            raise click.ClickException(describe_land_error(e))
        except prstack.github.GitHubError as e:
            raise click.ClickException(str(e))


def resolve_repo(
    sh: prstack.shell.Shell,
    config: prstack.config.Config,
    repo: Optional[str],
    ref: Optional[prstack.github_utils.PullRequestRef] = None,
) -> str:
    if repo:
        return repo
    if ref is not None and ref["repo"] is not None:
        return ref["repo"]
    return prstack.github_utils.repo_slug(
        prstack.github_utils.get_github_repo_name_with_owner(
            sh=sh, github_url=config.github_url, remote_name=config.remote_name
        )
    )


def resolve_trunk(sh: prstack.shell.Shell, config: prstack.config.Config) -> str:
    if config.trunk:
        return config.trunk
    return prstack.github_utils.detect_trunk(sh, config.remote_name)


async def find_stack(
    github: prstack.github.GitHubEndpoint,
    repo: str,
    ref: prstack.github_utils.PullRequestRef,
    trunk: str,
    *,
    exclude: Sequence[int] = (),
) -> prstack.stack.Stack:
    if ref["number"] is not None:
        return await prstack.stack.find_stack_for_number(
            github, repo, ref["number"], trunk, exclude=exclude
        )
    assert ref["branch"] is not None
    return await prstack.stack.find_stack_for_branch(
        github, repo, ref["branch"], trunk, exclude=exclude
    )


def format_stack(stack: Sequence[PullRequest]) -> str:
    # Top of the stack first, like git log
    lines = []
    for pr in reversed(stack):
        lines.append(
            "#{} {} ({} -> {}){}".format(
                pr.number,
                pr.title.strip(),
                pr.head,
                pr.base,
                " [draft]" if pr.draft else "",
            )
        )
    return "\n".join(lines)


def describe_land_error(e: prstack.land.LandError) -> str:
    if isinstance(e, prstack.land.ApprovalRequired):
        return (
            "{}\n"
            "  Hint: Get approval for #{}, or use --no-approval to skip this check"
        ).format(e, e.pr_number)
    if isinstance(e, prstack.land.DraftBlocking):
        return "{}\n  Hint: Mark PR #{} as ready for review before landing".format(
            e, e.pr_number
        )
    return str(e)


def describe_execution_error(e: prstack.land.LandExecutionError) -> str:
    lines = [str(e)]
    if e.rate_limit is not None:
        lines.append(e.rate_limit.describe())
    if e.merged:
        lines.append("Merged: {}".format(e.merge_url))
        if e.closed_prs:
            closed = ", ".join("#{}".format(pr.number) for pr in e.closed_prs)
            lines.append("Closed: {}".format(closed))
        lines.append("The remaining PRs below the merged one need closing by hand.")
    else:
        lines.append("Nothing was merged.")
    return "\n".join(lines)


async def run_log(
    github: prstack.github.GitHubEndpoint,
    repo: str,
    ident: Optional[str],
    trunk: str,
    *,
    exclude: Sequence[int] = (),
) -> str:
    if ident is None:
        stacks = await prstack.stack.fetch_all_stacks(
            github, repo, trunk, exclude=exclude
        )
        if not stacks:
            return "No stacks targeting {} in {}".format(trunk, repo)
        return "\n\n".join(format_stack(s) for s in stacks)
    ref = prstack.github_utils.parse_pull_request(ident)
    stack = await find_stack(github, repo, ref, trunk, exclude=exclude)
    return format_stack(stack)


async def run_status(
    github: prstack.github.GitHubEndpoint,
    repo: str,
    ident: str,
    trunk: str,
    *,
    exclude: Sequence[int] = (),
) -> str:
    ref = prstack.github_utils.parse_pull_request(ident)
    stack = await find_stack(github, repo, ref, trunk, exclude=exclude)
    statuses = await prstack.status.fetch_stack_status(github, repo, stack)
    if not statuses:
        return "No open PRs in the stack"
    return prstack.status.format_status(statuses)


async def run_land(
    github: prstack.github.GitHubEndpoint,
    repo: str,
    ident: str,
    trunk: str,
    options: prstack.land.LandOptions,
    *,
    dry_run: bool = False,
    exclude: Sequence[int] = (),
) -> str:
    ref = prstack.github_utils.parse_pull_request(ident)
    stack = await find_stack(github, repo, ref, trunk, exclude=exclude)
    plan = prstack.land.create_land_plan(stack, repo, options)
    if dry_run:
        return prstack.land.format_dry_run(
            plan, prstack.land.excluded_prs(stack, plan, options)
        )
    result = await prstack.land.execute_land(plan, github)
    lines = ["Landed #{}: {}".format(result.merged_pr.number, result.merge_url)]
    for pr in result.closed_prs:
        lines.append("Closed #{}".format(pr.number))
    return "\n".join(lines)


@click.group()
@click.version_option(prstack.__version__, "--version", "-V")
@click.option("--debug", is_flag=True, help="Log debug information to stderr")
def main(debug: bool) -> None:
    """
    Inspect and land stacks of GitHub pull requests
    """
    EXIT_STACK.enter_context(prstack.logs.manager(debug=debug))


@main.command("log")
@click.option("--repo", "-r", default=None, help="owner/name of the repository")
@click.option(
    "--exclude", "-e", multiple=True, type=int, help="Ignore this PR number"
)
@click.argument("ident", metavar="PR", required=False)
def log(repo: Optional[str], exclude: List[int], ident: Optional[str]) -> None:
    """
    Show the stack containing PR, or every stack if PR is omitted
    """
    with cli_context() as (shell, config, github):
        ref = prstack.github_utils.parse_pull_request(ident) if ident else None
        repo = resolve_repo(shell, config, repo, ref)
        trunk = resolve_trunk(shell, config)
        click.echo(asyncio.run(run_log(github, repo, ident, trunk, exclude=exclude)))


@main.command("status")
@click.option("--repo", "-r", default=None, help="owner/name of the repository")
@click.option(
    "--exclude", "-e", multiple=True, type=int, help="Ignore this PR number"
)
@click.argument("ident", metavar="PR")
def status(repo: Optional[str], exclude: List[int], ident: str) -> None:
    """
    Check CI, reviews and mergeability of every PR in a stack
    """
    with cli_context() as (shell, config, github):
        ref = prstack.github_utils.parse_pull_request(ident)
        repo = resolve_repo(shell, config, repo, ref)
        trunk = resolve_trunk(shell, config)
        click.echo(asyncio.run(run_status(github, repo, ident, trunk, exclude=exclude)))


@main.command("land")
@click.option("--repo", "-r", default=None, help="owner/name of the repository")
@click.option(
    "--exclude", "-e", multiple=True, type=int, help="Ignore this PR number"
)
@click.option("--dry-run", is_flag=True, help="Show what would happen and stop")
@click.option(
    "--no-approval", is_flag=True, help="Land PRs even if they aren't approved"
)
@click.option(
    "--count",
    type=click.IntRange(min=1),
    default=None,
    help="Land at most this many PRs from the bottom of the stack",
)
@click.argument("ident", metavar="PR")
def land(
    repo: Optional[str],
    exclude: List[int],
    dry_run: bool,
    no_approval: bool,
    count: Optional[int],
    ident: str,
) -> None:
    """
    Land a PR stack: squash-merge the topmost ready PR into trunk and
    close the ones below it
    """
    with cli_context() as (shell, config, github):
        ref = prstack.github_utils.parse_pull_request(ident)
        repo = resolve_repo(shell, config, repo, ref)
        trunk = resolve_trunk(shell, config)
        options = prstack.land.LandOptions(
            require_approval=config.require_approval and not no_approval,
            max_count=count,
        )
        click.echo(
            asyncio.run(
                run_land(
                    github,
                    repo,
                    ident,
                    trunk,
                    options,
                    dry_run=dry_run,
                    exclude=exclude,
                )
            )
        )
