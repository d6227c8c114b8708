# promptshaper/cli/interface.py
import sys
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
from click_option_group import optgroup
from rich.console import Console as RichConsole
from rich.table import Table
import structlog

from promptshaper import __version__ as app_version
from promptshaper.config.settings import CliConfig, TokenCountFormat, DEFAULT_ENCODING, split_comma_list
from promptshaper.config.loader import load_and_merge_configs, resolve_profile_name, effective_settings
from promptshaper.logging_setup import configure_logging
from promptshaper.core.context import ParserContext
from promptshaper.core.grammar import MatchType, ParserMatch
from promptshaper.core.output import write_to_stdout, write_to_file, copy_to_clipboard
from promptshaper.core.renderer import render_sync
from promptshaper.core.symbols import variables_from_mapping
from promptshaper.core.tokens import count_tokens
from promptshaper.exceptions import PromptShaperError, ConfigError
from promptshaper.util import read_text_file

log = structlog.get_logger(__name__)

def _parse_json_object(text: str, source: str) -> Dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {source}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"JSON in {source} must be an object mapping names to values")
    return data

def _collect_user_vars(cli_params: Dict[str, Any], settings: Dict[str, Any]) -> Dict[str, Any]:
    # later sources win: config, --json-file, --json, --var.
    user_vars: Dict[str, Any] = dict(settings.get("user_vars", {}))
    if cli_params.get("json_file"):
        json_path: Path = cli_params["json_file"]
        user_vars.update(_parse_json_object(read_text_file(json_path), str(json_path)))
    if cli_params.get("json_vars"):
        user_vars.update(_parse_json_object(cli_params["json_vars"], "--json"))
    for item in cli_params.get("user_vars") or ():
        if "=" not in item:
            raise ConfigError(f"Invalid --var '{item}', expected KEY=VALUE")
        key, value = item.split("=", 1)
        user_vars[key.strip()] = value
    return user_vars

def _build_cli_config(template: Optional[str], cli_params: Dict[str, Any], settings: Dict[str, Any]) -> CliConfig:
    template_path = None
    template_string = None
    if cli_params.get("template_is_string"):
        if template is None:
            raise click.UsageError("--string needs TEMPLATE text.")
        template_string = template
    elif template is None or template == "-":
        if sys.stdin.isatty() and template is None:
            raise click.UsageError("Missing TEMPLATE (a file path, '-' for stdin, or text with --string).")
        template_string = click.get_text_stream("stdin").read()
    else:
        template_path = Path(template)
        if not template_path.is_file():
            raise ConfigError(f"Template file not found: {template_path}")

    output_file = cli_params.get("output_file") or settings.get("output_file")
    show_tokens = cli_params.get("show_tokens_format_str") or settings.get("show_tokens_format")
    return CliConfig(
        template_path=template_path,
        template_string=template_string,
        user_vars=_collect_user_vars(cli_params, settings),
        file_extensions=split_comma_list(cli_params.get("file_extensions") or settings.get("file_extensions")),
        ignore_patterns=split_comma_list(list(cli_params.get("ignore_patterns") or ()) or settings.get("ignore_patterns")),
        raw=cli_params.get("raw", False),
        show_matches=cli_params.get("show_matches", False),
        debug=cli_params.get("debug") or bool(settings.get("debug", False)),
        output_file=Path(output_file) if output_file else None,
        clipboard=cli_params.get("clipboard") or bool(settings.get("clipboard", False)),
        show_tokens_format=TokenCountFormat.from_string(show_tokens),
        encoding=cli_params.get("encoding") or settings.get("encoding") or DEFAULT_ENCODING,
    )

def _describe_match(match: ParserMatch) -> List[str]:
    if match.type == MatchType.TEXT:
        preview = match.value if len(match.value) <= 40 else match.value[:37] + "..."
        return ["text", "", repr(preview)]
    if match.type == MatchType.VARIABLE:
        variable = match.variable
        params = variable.required_params + [f"{k}={v!r}" for k, v in variable.optional_params.items()]
        detail = "raw" if variable.raw else ("call " + variable.call.name if variable.call else f"params: {', '.join(params) or '-'}")
        return ["variable", variable.name, detail]
    if match.expression is not None:
        return ["slot", "", f"expression: {match.expression}"]
    kind = "raw" if match.raw else ("inline call" if match.inline else f"args: {len(match.args)}")
    return ["slot", match.name or "", kind]

def _print_matches(matches: List[ParserMatch]):
    table = Table(title="Parser matches")
    for column in ("#", "type", "position", "name", "detail"):
        table.add_column(column)
    for index, match in enumerate(matches):
        kind, name, detail = _describe_match(match)
        table.add_row(str(index), kind, f"{match.line}:{match.column}", name, detail)
    RichConsole(soft_wrap=True).print(table)

def _print_attachment_summary(attachments: List[Dict[str, Any]]):
    if not attachments:
        return
    click.secho(f"--- {len(attachments)} attachment(s) collected ---", fg="cyan", err=True)
    for attachment in attachments:
        url = attachment.get("image_url", {}).get("url", "")
        shown = url if not url.startswith("data:") else url.split(",", 1)[0] + ",..."
        click.echo(f"  {attachment.get('type', 'unknown')}: {shown}", err=True)

def _run_render_flow(config: CliConfig):
    template_text = config.template_string if config.template_string is not None else read_text_file(config.template_path)
    log.info("template_loaded", source=str(config.template_path or "<string>"), chars=len(template_text))

    if config.raw:
        output_to_write = template_text
    else:
        context = ParserContext(variables=variables_from_mapping(config.user_vars), options=config.render_options())
        result = render_sync(template_text, context)
        if config.show_matches:
            _print_matches(result if isinstance(result, list) else [])
            return
        output_to_write = result
        _print_attachment_summary(context.attachments)

    if not output_to_write.endswith("\n"):
        output_to_write += "\n"

    output_destination_used = False
    if config.output_file:
        write_to_file(config.output_file, output_to_write)
        click.echo(f"Info: Output written to: {config.output_file}", err=True)
        output_destination_used = True

    clipboard_copy_succeeded = False
    if config.clipboard:
        clipboard_copy_succeeded = copy_to_clipboard(output_to_write.strip())
        if clipboard_copy_succeeded:
            click.echo("Info: Rendered prompt copied to clipboard.", err=True)
        output_destination_used = True

    if not output_destination_used or (config.clipboard and not clipboard_copy_succeeded):
        if config.clipboard and not clipboard_copy_succeeded:
            click.echo("Info: Clipboard copy failed. Outputting to stdout instead.", err=True)
        log.info("writing_final_output_to_stdout")
        write_to_stdout(output_to_write)

    if config.show_tokens_format:
        token_count = count_tokens(output_to_write, config.encoding)
        count_str = f"{token_count:,}" if config.show_tokens_format == TokenCountFormat.HUMAN else str(token_count)
        click.echo(f"Token count (enc: '{config.encoding}'): {count_str}", err=True)


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.argument("template", required=False)
@optgroup.group("Input", help="Where the template comes from.")
@optgroup.option("-s", "--string", "template_is_string", is_flag=True, default=False, help="Treat TEMPLATE as template text instead of a file path.")
@optgroup.group("Variables", help="Values made available to the template as variables.")
@optgroup.option("--var", "user_vars", multiple=True, metavar="KEY=VALUE", help="Define a variable. Repeatable.")
@optgroup.option("--json", "json_vars", metavar="JSON", default=None, help="JSON object whose keys become variables.")
@optgroup.option("--json-file", "json_file", type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path), default=None, help="File holding a JSON object whose keys become variables.")
@optgroup.group("Function Options", help="Settings read by built-in functions.")
@optgroup.option("-x", "--extensions", "file_extensions", default=None, help="Comma separated file extensions loadDir() includes. Default: all files.")
@optgroup.option("--ignore", "ignore_patterns", multiple=True, help="Glob patterns loadDir() skips. Repeatable or comma separated.")
@optgroup.group("Output", help="Where and how the rendered prompt is written.")
@optgroup.option("-o", "--output", "output_file", type=click.Path(dir_okay=False, writable=True, path_type=Path), default=None, help="Path to write the output to.")
@optgroup.option("--clipboard", "clipboard", is_flag=True, default=False, help="Copy output to clipboard.")
@optgroup.option("-r", "--raw", "raw", is_flag=True, default=False, help="Output the template without rendering it.")
@optgroup.option("--matches", "show_matches", is_flag=True, default=False, help="Print the parser matches instead of rendering.")
@optgroup.option("--show-tokens", "show_tokens_format_str", type=click.Choice([f.value for f in TokenCountFormat]), default=None, help="Show token count of the output on stderr.")
@optgroup.option("-c", "--encoding", "encoding", default=None, help=f"Tiktoken encoding. Default: {DEFAULT_ENCODING}.")
@optgroup.group("Application Behavior", help="Configuration profiles and logging.")
@optgroup.option("--config-profile", "active_config_profile_name", default=None, help="Load a profile from config file(s). Falls back to $PROMPTSHAPER_PROFILE.")
@optgroup.option("--verbose", "-v", "verbosity_level", count=True, help="Verbosity: -v info, -vv debug.")
@optgroup.option("-d", "--debug", "debug", is_flag=True, default=False, help="Trace parsing and rendering.")
@optgroup.option("--json-logs", "json_logs", is_flag=True, default=False, help="Emit logs as JSON.")
@click.version_option(version=app_version, package_name="promptshaper", prog_name="promptshaper", help="Show version and exit.")
def main_cli(template: Optional[str], **cli_params: Any):
    """promptshaper: render prompt templates with variables, slots and functions."""

    log_level = "warning"
    if cli_params.get("verbosity_level", 0) == 1: log_level = "info"
    elif cli_params.get("verbosity_level", 0) >= 2 or cli_params.get("debug"): log_level = "debug"
    configure_logging(log_level_str=log_level, json_logs=cli_params.get("json_logs", False))

    log.debug("cli_command_invoked", template=template, params=cli_params)

    try:
        raw_config = load_and_merge_configs()
        profile_name = resolve_profile_name(cli_params.get("active_config_profile_name"))
        settings = effective_settings(raw_config, profile_name)
        config = _build_cli_config(template, cli_params, settings)
        _run_render_flow(config)
    except click.exceptions.Exit as e: raise e
    except PromptShaperError as e:
        log.error("handled_application_error_in_cli", error_type=type(e).__name__, message=str(e))
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)
    except click.ClickException as e:
        log.error("click_exception_in_cli", error_type=type(e).__name__, message=str(e))
        e.show(); sys.exit(e.exit_code)
    except Exception as e:
        log.critical("unexpected_critical_error_in_cli", message=str(e), exc_info=True)
        click.secho(f"Unexpected critical error: {e}. Please report this.", fg="red", err=True)
        sys.exit(1)
