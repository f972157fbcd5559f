"""Constants and default values for turnwright."""

# Default model configuration
DEFAULT_MODEL = "anthropic:claude-sonnet-4-5"
DEFAULT_ROUTER_MODEL = "anthropic:claude-haiku-4-5"

# Executor loop defaults
DEFAULT_MAX_TOOL_CALLS = 20
DEFAULT_MAX_CONTINUES = 5
DEFAULT_CONTINUATION_TAIL_CHARS = 400
DEFAULT_MAX_OUTPUT_TOKENS = 8192

# Router and scout are single short calls
ROUTER_MAX_TOKENS = 256
SCOUT_MAX_TOKENS = 1024

# Knowledge cache
DEFAULT_KNOWLEDGE_CACHE_ENABLED = True
DEFAULT_KNOWLEDGE_CACHE_THRESHOLD = 10
KNOWLEDGE_MAX_TOKENS = 2048
KNOWLEDGE_MAX_ATTEMPTS = 2

# Test runner defaults
DEFAULT_TEST_TIMEOUT = 120  # seconds
ALL_TESTS = "__all__"

# File size limits (in MB)
DEFAULT_MAX_READ_MB = 8
DEFAULT_MAX_WRITE_MB = 2

# Project-local state directory
STATE_DIR = ".turnwright"

DEFAULT_ENVIRONMENT = "web"
NEW_CHAT_TITLE = "New Chat"
TITLE_PREFIX_CHARS = 30

GREETING = "Hi! Open a project and tell me what to build, fix or explain."

# Built-in ignore patterns
BUILTIN_IGNORES = [
    # Version control and project metadata
    ".git/",
    ".gitattributes",
    ".github/",

    # turnwright internal
    ".turnwright/",

    # Python
    "__pycache__/",
    "*.pyc",
    "*.pyo",
    "*.pyd",
    "*.egg-info/",
    ".pytest_cache/",
    ".mypy_cache/",
    ".ruff_cache/",
    ".tox/",
    ".coverage",
    "htmlcov/",

    # Virtual environments
    "venv/",
    "env/",
    ".venv/",

    # Build artifacts
    "dist/",
    "build/",
    "*.so",
    "*.dylib",
    "*.dll",

    # JavaScript/Node
    "node_modules/",
    "package-lock.json",
    "yarn.lock",

    # IDE and editor files
    ".DS_Store",
    "*.swp",
    "*.swo",
    ".vscode/",
    ".idea/",

    # Logs and databases
    "*.log",
    "*.sqlite",
    "*.db",
]

# Language detection by extension (used for the active file block)
LANGUAGE_MAP = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".cs": "csharp",
    ".go": "go",
    ".rs": "rust",
    ".c": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".h": "c",
    ".hpp": "cpp",
    ".ino": "cpp",
    ".rb": "ruby",
    ".php": "php",
    ".sh": "shell",
    ".md": "markdown",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".xml": "xml",
    ".html": "html",
    ".css": "css",
    ".sql": "sql",
}

# Environment rules appended to the system prompt of a conversation
ENVIRONMENTS = {
    "web": {
        "label": "Web (HTML/CSS/JS)",
        "rules": """# WEB DEVELOPMENT CONTEXT RULES
- You are an expert in modern web development (HTML, CSS, JavaScript/TypeScript, React).
- Assume a modern browser environment with support for ES6+ features.
- For styling, prefer Tailwind CSS if not specified otherwise.""",
    },
    "csharp": {
        "label": "C# (.NET)",
        "rules": """# C# CONTEXT RULES
- You are an expert in C# and the .NET ecosystem.
- Assume the use of modern C# features (C# 12).
- For projects, suggest standard structures using 'dotnet new'.
- Pay attention to memory management and async/await patterns.""",
    },
    "arduino": {
        "label": "Arduino (C/C++)",
        "rules": """# ARDUINO CONTEXT RULES
- You are an expert in C/C++ for embedded systems on the Arduino platform.
- SRAM and flash are extremely limited. Write efficient code.
- Use 'Serial.println()' for debugging.
- Common libraries include Wire.h and SPI.h.""",
    },
    "esp32": {
        "label": "ESP32 (Arduino Framework)",
        "rules": """# ESP32 (ARDUINO FRAMEWORK) CONTEXT RULES
- You are an expert in C/C++ for the ESP32 microcontroller using the Arduino framework.
- The chip has a dual-core processor with Wi-Fi and Bluetooth built in.
- Use FreeRTOS tasks ('xTaskCreate', 'xTaskCreatePinnedToCore') for concurrent work. loop() runs on core 1.
- For networking use 'WiFi.h' and 'HTTPClient.h'.
- Use 'Serial.println()' for debugging output.""",
    },
    "cpp": {
        "label": "C++",
        "rules": """# C++ CONTEXT RULES
- You are an expert in modern C++ (C++17/C++20).
- Use RAII and smart pointers (std::unique_ptr, std::shared_ptr) for memory management.
- Use the Standard Template Library extensively.
- Use CMake for project structure.""",
    },
    "java": {
        "label": "Java",
        "rules": """# JAVA CONTEXT RULES
- You are an expert in Java and the JVM ecosystem.
- Assume a recent LTS version of Java (17 or 21).
- Use Maven or Gradle for project structure.
- Follow Java conventions for exception handling and common design patterns.""",
    },
    "python": {
        "label": "Python",
        "rules": """# PYTHON CONTEXT RULES
- You are an expert in Python 3.
- Follow PEP 8 style guidelines.
- Use virtual environments and pip for dependency management.
- Tests are run with pytest.""",
    },
}

# Model descriptors - Anthropic Claude models only
SUPPORTED_MODELS = {
    # Claude Sonnet 4.5 - flagship model for coding and agents
    "anthropic:claude-sonnet-4-5": {
        "provider": "anthropic",
        "name": "claude-sonnet-4-5-20250929",
        "max_output_tokens": 8192,
    },
    # Claude Haiku 4.5 - fast, used by the router and scout
    "anthropic:claude-haiku-4-5": {
        "provider": "anthropic",
        "name": "claude-haiku-4-5-20251001",
        "max_output_tokens": 8192,
    },
    # Claude Opus 4.1 - most capable for complex reasoning
    "anthropic:claude-opus-4-1": {
        "provider": "anthropic",
        "name": "claude-opus-4-1-20250805",
        "max_output_tokens": 8192,
    },
}
