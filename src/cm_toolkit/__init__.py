"""CM Toolkit - Installation inspector and downgrader for modded Fallout 4.

This package provides:
    - Plugin (.esp/.esm/.esl) header decoding with master-file tracking
    - Archive (.ba2/.bsa) header decoding and content-type classification
    - Problem scanning against engine limits (plugin counts, archive counts,
      missing masters, INI flags)
    - Executable downgrade via binary delta patches with backup and rollback
    - Archive content-type header patching

The decoding and patching core has no user interface; a small command-line
front end is provided for scripting and troubleshooting.

Package Structure:
    app: Command-line entry point and orchestrator
    config: Paths, settings persistence, INI loading, and path validation
    core: Decoders, integrity engine, problem rules, and patch pipeline

Quick Start:
    Run from command line::

        python -m cm_toolkit analyze "C:/Games/Fallout 4"

    Or programmatically::

        from cm_toolkit.core import analyze
        result = analyze(Path("C:/Games/Fallout 4"))

Configuration:
    - Config file: <user config dir>/CMToolkit/configuration.xml
    - Log file: <user config dir>/CMToolkit/cm_toolkit.log
"""

__version__ = "0.4.0"
__app_name__ = "CM Toolkit"
