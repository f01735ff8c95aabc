import json
import logging
import os
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from mpcal.ast.classes import ModularPlusCalBlock
from mpcal.config.config import DEFAULT_CONFIG, ExpansionConfig
from mpcal.diagnostics import DiagnosticSink
from mpcal.expansion.core.expander import ModularPlusCalExpander

from .exceptions import CompilationErrors, ErrorCode, ModularPlusCalError
from .utils import CompilerArtifactEncoder

logger = logging.getLogger(__name__)


def load_block(source_content: str, file_path: Optional[str] = None) -> ModularPlusCalBlock:
    """Validates a JSON-serialized Modular PlusCal AST into a block."""
    try:
        return ModularPlusCalBlock.model_validate_json(source_content)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "<root>"
        details = f"{e.error_count()} problem(s), the first at '{location}': {first['msg']}"
        raise ModularPlusCalError(ErrorCode.INVALID_AST, file_path=file_path, details=details) from e


class CompilationPipeline:
    """
    Orchestrates the full compilation process from a serialized AST to the flat
    PlusCal algorithm. This class manages the flow of data between the stages.
    """

    def __init__(
        self,
        source_content: str,
        file_path: Optional[str],
        dump_stages: List[str] = [],
        stop_after_stage: Optional[str] = None,
        config: ExpansionConfig = DEFAULT_CONFIG,
    ):
        self.source_content = source_content
        self.file_path = os.path.abspath(file_path) if file_path else "<stdin>"
        self.dump_stages = dump_stages
        self.stop_after_stage = stop_after_stage
        self.config = config
        self.sink = DiagnosticSink()
        self.artifacts: Dict[str, Any] = {}
        self.results: List[Any] = []

    def run(self) -> Any:
        """
        Executes the compilation pipeline stage by stage.
        The final artifact from each stage is passed as input to the next.
        """
        try:
            # --- Stage 1: Loading the AST ---
            self._run_simple_stage("ast", load_block, self.source_content, self.file_path)
            if self.stop_after_stage == "ast":
                return self.results[-1]

            # --- Stage 2: Expansion (as a Sub-Pipeline) ---
            self._run_sub_pipeline("emitter", self.results[-1])
            return self.results[-1]

        except (ModularPlusCalError, CompilationErrors):
            raise
        except Exception as e:
            logger.exception("Unexpected failure while compiling %s", self.file_path)
            raise Exception(f"An unexpected internal error occurred: {e}") from e

    def _run_simple_stage(self, name: str, func, *args, **kwargs) -> Any:
        """Runs a single function as a stage, storing and returning its result."""
        result = func(*args, **kwargs)
        self.artifacts[name] = result
        self.results.append(result)
        if name in self.dump_stages:
            self.save_artifact(name, result)
        return result

    def _run_sub_pipeline(self, name: str, input_artifact: ModularPlusCalBlock) -> Any:
        """Runs the expansion pass, which has its own internal pipeline."""
        sub_pipeline = ModularPlusCalExpander(input_artifact, self.config, self.sink, self.stop_after_stage)
        final_product = sub_pipeline.run()

        self.artifacts.update(sub_pipeline.artifacts)
        self.results.append(final_product)

        for stage_name, artifact_data in sub_pipeline.artifacts.items():
            if stage_name in self.dump_stages:
                self.save_artifact(stage_name, artifact_data)

        return final_product

    def save_artifact(self, name: str, data: Any):
        """Saves an intermediate artifact to a JSON file with a user-friendly name."""

        if self.file_path == "<stdin>":
            base_name = "stdin_output"
        else:
            base_name = os.path.splitext(self.file_path)[0]

        output_path = f"{base_name}.{name}.json"

        print(f"--- Saving artifact '{name}' to {output_path} ---")

        try:
            with open(output_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=False, cls=CompilerArtifactEncoder)
        except OSError as e:
            print(f"Error: Could not save artifact '{name}': {e}")


def compile_modular_pluscal(
    source_content: str,
    file_path: Optional[str] = None,
    dump_stages: List[str] = [],
    stop_after_stage: Optional[str] = None,
    config: ExpansionConfig = DEFAULT_CONFIG,
):
    """High-level entry point for the compilation pipeline."""
    pipeline = CompilationPipeline(source_content, file_path, dump_stages, stop_after_stage, config)
    return pipeline.run()
