import sys
from pathlib import Path

import yaml

from stepwise.stepwise_runtime import ProcessRunner
from stepwise.stepwise_printer import Printer
from stepwise.stepwise_serialize import detect_format, load_process, serialize


def read_line(prompt: str) -> str:
    return input(prompt)


def _parse_arg(text: str):
    """Command-line args are YAML scalars: `3` is an int, `[1, 2]` a list, `abc` a string."""
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def print_result(result, printer: Printer, fmt=None):
    if fmt:
        print(serialize(result.values, fmt=fmt).rstrip())
        return
    for value in result.values:
        print(printer.pformat(value))


def run_process_file(file_path: str, args, fmt=None):
    """Run a process document non-interactively and exit with appropriate status."""
    runner = ProcessRunner()
    printer = Printer()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    try:
        proc = load_process(source, fmt=detect_format(filename=p.name, data_hint=source))
    except (yaml.YAMLError, KeyError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)
    result = runner.run(proc, *[_parse_arg(a) for a in args])
    print_result(result, printer, fmt)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)


def main(argv=None):
    """Run a process document when provided, otherwise start the interactive loop."""
    argv = list(sys.argv[1:] if argv is None else argv)
    fmt = None
    for flag in ("--json", "--yaml"):
        if flag in argv:
            argv.remove(flag)
            fmt = flag[2:]
    if argv and not argv[0].startswith("-"):
        run_process_file(argv[0], argv[1:], fmt)
        return

    print("stepwise v0.1")
    print("Enter a process as a flow list, e.g. [$P, $len]. Type 'exit' or press Ctrl+D to quit.")

    runner = ProcessRunner()
    printer = Printer()
    while True:
        try:
            line = read_line(">> ").strip()
            if not line:
                continue
            if line == "exit":
                break

            proc = load_process(line, fmt='yaml')
            result = runner.run(proc)
            print_result(result, printer, fmt)
            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)

        except EOFError:
            print("\nExiting.")
            break
        except (yaml.YAMLError, KeyError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
