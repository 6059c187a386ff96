"""Gate catalogue: worker names, predecessors, deliverables, validation profiles."""

DATA_PREPARATION = 0
TEST_DESIGN = 1
ELEMENT_MAPPING = 2
CODE_GENERATION = 3
EXECUTION = 4
LEARNING = 5

FIXED_SEQUENCE = [TEST_DESIGN, ELEMENT_MAPPING, CODE_GENERATION, EXECUTION, LEARNING]

GATES = {
    DATA_PREPARATION: {
        "name": "data_preparation",
        "worker": "data-preparer",
        "requires": [],
        "optional_inputs": [],
        "needs_page": True,
        "deliverables": ["data_file"],
        "profile": {"required": ["records"], "pass_threshold": 70, "partial_threshold": 50},
    },
    TEST_DESIGN: {
        "name": "test_design",
        "worker": "test-designer",
        "requires": [],
        "optional_inputs": [DATA_PREPARATION],
        "needs_page": True,
        "deliverables": ["test_case_file"],
        "profile": {"required": ["test_cases"], "pass_threshold": 70, "partial_threshold": 50},
    },
    ELEMENT_MAPPING: {
        "name": "element_mapping",
        "worker": "element-mapper",
        "requires": [TEST_DESIGN],
        "optional_inputs": [],
        "needs_page": True,
        "deliverables": ["mapping_file"],
        "profile": {"required": ["mappings"], "pass_threshold": 70, "partial_threshold": 50},
    },
    CODE_GENERATION: {
        "name": "code_generation",
        "worker": "code-generator",
        "requires": [TEST_DESIGN, ELEMENT_MAPPING],
        "optional_inputs": [DATA_PREPARATION],
        "needs_page": False,
        "deliverables": ["test_file"],
        "profile": {"required": ["files", "compilation_errors"], "pass_threshold": 70, "partial_threshold": 50},
    },
    EXECUTION: {
        "name": "execution",
        "worker": "test-executor",
        "healer": "test-healer",
        "requires": [CODE_GENERATION],
        "optional_inputs": [],
        "needs_page": False,
        "deliverables": ["report_file"],
        # every test must pass for SUCCESS
        "profile": {"required": ["total", "passed_count"], "pass_threshold": 100, "partial_threshold": 50},
    },
    LEARNING: {
        "name": "learning",
        "worker": "learning-recorder",
        "requires": [EXECUTION],
        "optional_inputs": [ELEMENT_MAPPING],
        "needs_page": False,
        "deliverables": [],
        "profile": {"required": ["learnings"], "pass_threshold": 70, "partial_threshold": 50},
    },
}


def gate_name(gate):
    return GATES[gate]["name"]
