import argparse
import json
import logging
import os
import sys
import time

from .compiler import CompilationPipeline
from .config.config import STAGE_MAP, ExpansionConfig
from .exceptions import CompilationErrors, ModularPlusCalError
from .formatter.pluscal_formatter import format_pluscal
from .utils import CompilerArtifactEncoder, TerminalColors


def main():
    start_time = time.perf_counter()

    # Dynamically generate help text for the --compile argument
    stage_help_text = "Compile up to a specific stage and save the intermediate artifact. "
    for key, (name, desc) in STAGE_MAP.items():
        stage_help_text += f"'{key}' for {desc}. "
    stage_help_text += "Omitting this flag runs the full expansion and writes the flat PlusCal algorithm."

    parser = argparse.ArgumentParser(description="Expand a Modular PlusCal block (JSON AST) into a flat PlusCal algorithm.")
    parser.add_argument(
        "input_file",
        nargs="?",
        default=None,
        help="The path to the input .json AST. Omit to read from stdin.",
    )
    parser.add_argument(
        "-o",
        "--output",
        dest="output_file",
        help="The path to the output file. Only used for full compilation.",
    )
    parser.add_argument("-c", "--compile", type=str, choices=STAGE_MAP.keys(), help=stage_help_text)
    parser.add_argument("--emit", choices=["json", "pluscal"], default="json", help="Output format of the flat algorithm.")
    parser.add_argument("--allow-shadowing", action="store_true", help="Let archetype locals shadow parameters of the same name.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every stage at DEBUG level.")

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    # --- Input Validation ---
    if not args.input_file and sys.stdin.isatty():
        parser.error("input_file is required when not reading from a pipe.")

    input_path_for_display = args.input_file or "stdin"
    print(f"--- Compiling {input_path_for_display} ---")

    try:
        # --- Read Input ---
        if not args.input_file:
            source_content = sys.stdin.read()
            input_file_path_abs = None
        else:
            input_file_path_abs = os.path.abspath(args.input_file)
            with open(input_file_path_abs, "r", encoding="utf-8") as f:
                source_content = f.read()

        # --- Determine Pipeline Stop Point ---
        stop_after_stage = None
        if args.compile:
            stop_after_stage, stage_desc = STAGE_MAP[args.compile]

        # The compiler pipeline will automatically save the artifact if requested
        dump_stages = [stop_after_stage] if stop_after_stage else []

        # --- Run Compilation ---
        config = ExpansionConfig(allow_parameter_shadowing=args.allow_shadowing)
        pipeline = CompilationPipeline(
            source_content,
            file_path=input_file_path_abs,
            dump_stages=dump_stages,
            stop_after_stage=stop_after_stage,
            config=config,
        )
        final_product = pipeline.run()

        for warning in pipeline.sink.warnings:
            print(f"{TerminalColors.YELLOW}{warning.render()}{TerminalColors.RESET}", file=sys.stderr)

        # --- Handle Output ---
        if stop_after_stage:
            # The pipeline already prints the "Artifact saved" message.
            print(f"\n{TerminalColors.GREEN}--- Compilation to stage '{args.compile} ({stage_desc})' successful ---{TerminalColors.RESET}")
        else:
            extension = ".tla" if args.emit == "pluscal" else ".pcal.json"
            if args.output_file:
                raw_output_path = args.output_file
            elif args.input_file:
                raw_output_path = os.path.splitext(args.input_file)[0] + extension
            else:
                raw_output_path = "stdin" + extension

            output_file_path = os.path.abspath(raw_output_path)
            # Ensure the directory exists before writing
            os.makedirs(os.path.dirname(output_file_path), exist_ok=True)

            with open(output_file_path, "w", encoding="utf-8") as f:
                if args.emit == "pluscal":
                    f.write(format_pluscal(final_product) + "\n")
                else:
                    json.dump(final_product, f, indent=2, cls=CompilerArtifactEncoder)

            print(f"\n{TerminalColors.GREEN}--- Compilation Successful ---{TerminalColors.RESET}")
            print(f"Algorithm written to {output_file_path}")

    # --- Error Handling ---
    except CompilationErrors as e:
        print(f"\n{TerminalColors.RED}--- COMPILATION ERROR ---{TerminalColors.RESET}", file=sys.stderr)
        for diagnostic in e.diagnostics:
            color = TerminalColors.RED if diagnostic.severity.value == "error" else TerminalColors.YELLOW
            print(f"{color}{diagnostic.render()}{TerminalColors.RESET}", file=sys.stderr)
        sys.exit(1)
    except ModularPlusCalError as e:
        print(
            f"\n{TerminalColors.RED}--- COMPILATION ERROR ---\n{e}{TerminalColors.RESET}",
            file=sys.stderr,
        )
        sys.exit(1)
    except FileNotFoundError:
        print(
            f"{TerminalColors.RED}ERROR: Input file '{input_path_for_display}' not found.{TerminalColors.RESET}",
            file=sys.stderr,
        )
        sys.exit(1)
    except Exception as e:
        print(
            f"\n{TerminalColors.RED}--- UNEXPECTED COMPILER ERROR ---{TerminalColors.RESET}",
            file=sys.stderr,
        )
        print("This may be a bug in the compiler. Please report it.", file=sys.stderr)
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        sys.exit(1)

    finally:
        # --- Execution Time ---
        end_time = time.perf_counter()
        duration = end_time - start_time
        print(f"\n{TerminalColors.CYAN}--- Total Execution Time: {duration:.4f} seconds ---{TerminalColors.RESET}")


if __name__ == "__main__":
    main()
