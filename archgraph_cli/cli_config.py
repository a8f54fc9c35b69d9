"""`archgraph config` commands: LLM provider and settings management."""

from __future__ import annotations

import typer

from . import config, config_manager

config_app = typer.Typer(help="Manage LLM provider and analysis settings", no_args_is_help=True)

ALL_PROVIDERS = ("ollama", "groq", "openai", "anthropic", "gemini", "openrouter")


def print_success(message: str):
    """Print success message."""
    typer.echo(typer.style(f"✅ {message}", fg=typer.colors.GREEN))


def print_error(message: str):
    """Print error message."""
    typer.echo(typer.style(f"❌ {message}", fg=typer.colors.RED), err=True)


def print_info(message: str):
    """Print info message."""
    typer.echo(typer.style(f"ℹ️  {message}", fg=typer.colors.BLUE))


@config_app.command("set-llm")
def set_llm(
    provider: str = typer.Argument(..., help="LLM provider: ollama, groq, openai, anthropic, gemini, openrouter"),
    model: str = typer.Option(None, "--model", "-m", help="Model name (uses provider default if not set)."),
    api_key: str = typer.Option(None, "--api-key", "-k", help="API key for cloud providers."),
    endpoint: str = typer.Option(None, "--endpoint", "-e", help="Custom endpoint URL."),
    no_validate: bool = typer.Option(False, "--no-validate", help="Skip the Ollama connection check."),
):
    """Switch the LLM provider used by the AI-assisted stages.

    Examples:
        archgraph config set-llm ollama -m qwen2.5-coder:7b
        archgraph config set-llm groq -k YOUR_API_KEY
    """
    provider = provider.lower().strip()
    if provider not in ALL_PROVIDERS:
        print_error(f"Unknown provider '{provider}'. Choose from: {', '.join(ALL_PROVIDERS)}")
        raise typer.Exit(code=1)

    current = config_manager.load_config()
    defaults = config_manager.get_provider_config(provider)
    resolved_model = model or defaults.get("model", "")
    resolved_endpoint = endpoint or defaults.get("endpoint", "")

    resolved_api_key = api_key or ""
    if provider != "ollama" and not resolved_api_key:
        if current.get("provider") == provider and current.get("api_key"):
            resolved_api_key = current["api_key"]
            print_info(f"Reusing existing API key for {provider}")
        else:
            resolved_api_key = typer.prompt(f"Enter your {provider} API key", hide_input=True)

    if provider == "ollama" and not no_validate:
        typer.echo("⏳ Checking Ollama connection...")
        if not config_manager.validate_ollama_connection(resolved_endpoint):
            print_error("Cannot connect to Ollama!")
            if not typer.confirm("Save anyway?", default=False):
                raise typer.Exit(code=1)

    if not config_manager.save_config(provider, resolved_model, resolved_api_key, resolved_endpoint):
        print_error("Failed to save configuration!")
        raise typer.Exit(code=1)

    print_success(f"LLM provider set to: {provider}")
    typer.echo(f"  Provider: {typer.style(provider, fg=typer.colors.CYAN)}")
    typer.echo(f"  Model:    {typer.style(resolved_model, fg=typer.colors.CYAN)}")
    if resolved_endpoint:
        typer.echo(f"  Endpoint: {resolved_endpoint}")


@config_app.command("show-llm")
def show_llm():
    """Show current LLM provider configuration."""
    cfg = config_manager.load_config()
    api_key = cfg.get("api_key", "")

    typer.echo(typer.style("LLM Configuration", bold=True, fg=typer.colors.CYAN))
    typer.echo(f"  Provider  {typer.style(cfg.get('provider', 'ollama'), bold=True)}")
    typer.echo(f"  Model     {cfg.get('model', '')}")
    if cfg.get("endpoint"):
        typer.echo(f"  Endpoint  {typer.style(cfg['endpoint'], dim=True)}")
    if api_key:
        typer.echo(f"  API Key   {api_key[:8] + '•' * min(len(api_key) - 8, 16)}")
    else:
        typer.echo(f"  API Key   {typer.style('(not set)', dim=True)}")
    typer.echo(f"  Config    {typer.style(str(config.CONFIG_FILE), dim=True)}")


@config_app.command("unset-llm")
def unset_llm(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
):
    """Remove the [llm] section, falling back to Ollama defaults."""
    if not config.CONFIG_FILE.exists():
        print_info("No LLM configuration found. Nothing to unset.")
        raise typer.Exit(code=0)

    if not yes and not typer.confirm("Remove the LLM configuration (API keys included)?", default=False):
        print_info("Cancelled.")
        raise typer.Exit(code=0)

    if not config_manager.clear_llm_config():
        print_error("Failed to reset configuration!")
        raise typer.Exit(code=1)
    print_success("LLM configuration removed; Ollama defaults will be used.")


@config_app.command("show")
def show_settings():
    """Show the effective analysis, security and architecture settings."""
    sections = {
        "analysis": config.analysis_settings(),
        "security": config.security_settings(),
        "architecture": config.architecture_settings(),
    }
    for name, values in sections.items():
        typer.echo(typer.style(f"[{name}]", bold=True, fg=typer.colors.CYAN))
        for key, value in values.items():
            typer.echo(f"  {key} = {value}")
