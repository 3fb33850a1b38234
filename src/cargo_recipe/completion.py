"""
Shell completion scripts.
"""

from typing import Dict

GENERATE_OPTIONS = (
    "--manifest-path",
    "--output-dir",
    "-o",
    "--quiet",
    "-q",
    "--verbose",
    "-v",
    "--reproducible",
    "-R",
    "--legacy-overrides",
    "-l",
    "--index-reference",
    "--index-md5",
    "--index-sha256",
    "--stdout",
)


def get_bash_completion() -> str:
    """Bash completion script."""
    return """
# Bash completion for cargo-recipe
_cargo_recipe_completion() {
    local cur prev opts
    COMPREPLY=()
    cur="${COMP_WORDS[COMP_CWORD]}"
    prev="${COMP_WORDS[COMP_CWORD-1]}"

    if [[ ${COMP_CWORD} == 1 ]]; then
        opts="generate info config completion --version --help"
        COMPREPLY=( $(compgen -W "${opts}" -- ${cur}) )
        return 0
    fi

    if [[ "${COMP_WORDS[1]}" == "config" && ${COMP_CWORD} == 2 ]]; then
        opts="init show validate"
        COMPREPLY=( $(compgen -W "${opts}" -- ${cur}) )
        return 0
    fi

    if [[ "${COMP_WORDS[1]}" == "completion" && ${COMP_CWORD} == 2 ]]; then
        COMPREPLY=( $(compgen -W "bash zsh fish" -- ${cur}) )
        return 0
    fi

    if [[ "${COMP_WORDS[1]}" == "generate" ]]; then
        case "${prev}" in
            --manifest-path)
                local manifests=$(find . -maxdepth 3 -name "Cargo.toml" 2>/dev/null | head -20)
                COMPREPLY=( $(compgen -W "${manifests}" -- ${cur}) )
                return 0
                ;;
            --output-dir|-o)
                COMPREPLY=( $(compgen -d -- ${cur}) )
                return 0
                ;;
            --index-reference|--index-md5|--index-sha256)
                return 0
                ;;
            *)
                opts="%s"
                COMPREPLY=( $(compgen -W "${opts}" -- ${cur}) )
                return 0
                ;;
        esac
    fi
}

complete -F _cargo_recipe_completion cargo-recipe
""" % " ".join(GENERATE_OPTIONS)


def get_zsh_completion() -> str:
    """Zsh completion script."""
    return """
#compdef cargo-recipe

_cargo_recipe() {
    local context state state_descr line
    typeset -A opt_args

    _arguments -C \\
        '--version[Show version information]' \\
        '1: :_cargo_recipe_commands' \\
        '*:: :->args'

    case $state in
        args)
            case $words[1] in
                generate)
                    _arguments \\
                        '--manifest-path[Path to Cargo.toml]:manifest:_files -g "Cargo.toml"' \\
                        '(-o --output-dir)'{-o,--output-dir}'[Directory for the recipe]:directory:_directories' \\
                        '(-q --quiet)'{-q,--quiet}'[Suppress the summary]' \\
                        '(-v --verbose)'{-v,--verbose}'[List every source entry]' \\
                        '(-R --reproducible)'{-R,--reproducible}'[Pin git sources to locked commits]' \\
                        '(-l --legacy-overrides)'{-l,--legacy-overrides}'[Use pre-honister override syntax]' \\
                        '--index-reference[Registry index reference]:reference:' \\
                        '--index-md5[Registry index md5sum]:md5:' \\
                        '--index-sha256[Registry index sha256sum]:sha256:' \\
                        '--stdout[Print the recipe instead of writing it]'
                    ;;
                config)
                    _arguments '1: :(init show validate)'
                    ;;
                completion)
                    _arguments '1: :(bash zsh fish)'
                    ;;
            esac
            ;;
    esac
}

_cargo_recipe_commands() {
    local commands
    commands=(
        'generate:Generate a bitbake recipe from Cargo.toml and Cargo.lock'
        'info:Show inputs, configuration files and environment variables'
        'config:Configuration management commands'
        'completion:Generate shell completion scripts'
    )
    _describe 'command' commands
}

_cargo_recipe "$@"
"""


def get_fish_completion() -> str:
    """Fish completion script."""
    return """
# Fish completion for cargo-recipe

complete -c cargo-recipe -n '__fish_use_subcommand' -a 'generate' -d 'Generate a bitbake recipe'
complete -c cargo-recipe -n '__fish_use_subcommand' -a 'info' -d 'Show information'
complete -c cargo-recipe -n '__fish_use_subcommand' -a 'config' -d 'Configuration management'
complete -c cargo-recipe -n '__fish_use_subcommand' -a 'completion' -d 'Shell completion scripts'
complete -c cargo-recipe -n '__fish_use_subcommand' -l version -d 'Show version'
complete -c cargo-recipe -n '__fish_use_subcommand' -l help -d 'Show help'

complete -c cargo-recipe -n '__fish_seen_subcommand_from generate' -l manifest-path -d 'Path to Cargo.toml' -F
complete -c cargo-recipe -n '__fish_seen_subcommand_from generate' -s o -l output-dir -d 'Output directory' -x -a "(__fish_complete_directories)"
complete -c cargo-recipe -n '__fish_seen_subcommand_from generate' -s q -l quiet -d 'Quiet mode'
complete -c cargo-recipe -n '__fish_seen_subcommand_from generate' -s v -l verbose -d 'Verbose mode'
complete -c cargo-recipe -n '__fish_seen_subcommand_from generate' -s R -l reproducible -d 'Pin git sources to locked commits'
complete -c cargo-recipe -n '__fish_seen_subcommand_from generate' -s l -l legacy-overrides -d 'Legacy override syntax'
complete -c cargo-recipe -n '__fish_seen_subcommand_from generate' -l index-reference -d 'Registry index reference' -x
complete -c cargo-recipe -n '__fish_seen_subcommand_from generate' -l index-md5 -d 'Registry index md5sum' -x
complete -c cargo-recipe -n '__fish_seen_subcommand_from generate' -l index-sha256 -d 'Registry index sha256sum' -x
complete -c cargo-recipe -n '__fish_seen_subcommand_from generate' -l stdout -d 'Print the recipe to stdout'

complete -c cargo-recipe -n '__fish_seen_subcommand_from config' -a 'init' -d 'Create sample config'
complete -c cargo-recipe -n '__fish_seen_subcommand_from config' -a 'show' -d 'Show current config'
complete -c cargo-recipe -n '__fish_seen_subcommand_from config' -a 'validate' -d 'Validate config file'

complete -c cargo-recipe -n '__fish_seen_subcommand_from completion' -a 'bash zsh fish'
"""


def get_completion_scripts() -> Dict[str, str]:
    """Return all completion scripts."""
    return {
        "bash": get_bash_completion(),
        "zsh": get_zsh_completion(),
        "fish": get_fish_completion(),
    }
