"""
Parameter management for adaptwave runs.

Provides a clean way to define parameters with defaults that can be:
1. Edited directly in scripts (just assign new values)
2. Overridden from the command line via PETSc options

Naming Convention:
    We use the 'aw_' prefix for parameter names. This avoids collisions with
    PETSc solver options and makes it clear these are adaptwave parameters.

    The CLI flag matches the Python name exactly:
    - Python: params.aw_end_time
    - CLI: -aw_end_time 2.5

Example usage:
    params = aw.Params(
        aw_end_time = 5.0,          # Final time
        aw_time_step = 1.0 / 64,    # Step size
    )

    # Override in a script - just assign:
    params.aw_end_time = 1.0

    # Override from command line (flag matches Python name):
    # python -m adaptwave -aw_end_time 1.0
"""

from petsc4py import PETSc


class Params:
    """
    Parameter container with PETSc command-line override support.

    Each parameter can be overridden from the command line using the same
    name as a PETSc option flag.

    Attributes:
        _defaults: Original default values
        _sources: Where each value came from ('default', 'cli', 'override')

    Example:
        >>> params = Params(aw_time_step=0.015625, aw_end_time=5.0)
        >>> params.aw_end_time  # Returns 5.0 or CLI override
        5.0
        >>> params.aw_end_time = 1.0  # Script override
        >>> params.aw_end_time
        1.0
    """

    def __init__(self, options=None, **defaults):
        """
        Initialize parameters with defaults, checking for CLI overrides.

        Args:
            options: PETSc options database to read (default: the global one)
            **defaults: Parameter names and default values.
        """
        object.__setattr__(self, "_defaults", dict(defaults))
        object.__setattr__(self, "_values", {})
        object.__setattr__(self, "_sources", {})

        opts = options if options is not None else PETSc.Options()

        for name, default in defaults.items():
            cli_value = self._get_petsc_option(opts, name, default)

            if opts.hasName(name) and cli_value != default:
                self._values[name] = cli_value
                self._sources[name] = "cli"
            else:
                self._values[name] = default
                self._sources[name] = "default"

    @staticmethod
    def _get_petsc_option(opts, name: str, default):
        """Get option value from PETSc, matching the type of default."""
        if isinstance(default, bool):
            return opts.getBool(name, default)
        elif isinstance(default, int):
            return opts.getInt(name, default)
        elif isinstance(default, float):
            return opts.getReal(name, default)
        elif isinstance(default, str):
            return opts.getString(name, default)
        elif default is None:
            # A None default makes getString treat the option as required
            if not opts.hasName(name):
                return None
            return opts.getString(name)
        else:
            raise TypeError(
                f"Parameter '{name}' has unsupported type {type(default).__name__} "
                f"for command-line override"
            )

    def __getattr__(self, name: str):
        """Get parameter value."""
        if name.startswith("_"):
            return object.__getattribute__(self, name)
        values = object.__getattribute__(self, "_values")
        if name in values:
            return values[name]
        raise AttributeError(f"No parameter named '{name}'")

    def __setattr__(self, name: str, value):
        """Set parameter value (override)."""
        if name.startswith("_"):
            object.__setattr__(self, name, value)
            return
        values = object.__getattribute__(self, "_values")
        sources = object.__getattribute__(self, "_sources")
        if name not in values:
            raise AttributeError(
                f"Cannot add new parameter '{name}'. " f"Available: {list(values.keys())}"
            )
        values[name] = value
        sources[name] = "override"

    def __repr__(self):
        """Show parameters with their sources."""
        lines = ["Params("]
        values = object.__getattribute__(self, "_values")
        sources = object.__getattribute__(self, "_sources")
        defaults = object.__getattribute__(self, "_defaults")

        for name, value in values.items():
            source = sources[name]
            default = defaults[name]

            if isinstance(value, float):
                val_str = f"{value:g}"
            elif isinstance(value, str):
                val_str = f"'{value}'"
            else:
                val_str = repr(value)

            if source == "cli":
                indicator = f"  # from -{name}"
            elif source == "override":
                indicator = f"  # overridden (was {default!r})"
            else:
                indicator = ""

            lines.append(f"    {name} = {val_str},{indicator}")

        lines.append(")")
        return "\n".join(lines)

    def source(self, name: str) -> str:
        """Where the value of parameter `name` came from."""
        return object.__getattribute__(self, "_sources")[name]

    def to_dict(self) -> dict:
        """Return parameters as a dictionary."""
        return dict(object.__getattribute__(self, "_values"))

    def reset(self, name: str = None):
        """Reset parameter(s) to default values.

        Args:
            name: Parameter to reset, or None to reset all
        """
        values = object.__getattribute__(self, "_values")
        sources = object.__getattribute__(self, "_sources")
        defaults = object.__getattribute__(self, "_defaults")

        if name is None:
            for n in defaults:
                values[n] = defaults[n]
                sources[n] = "default"
        elif name in defaults:
            values[name] = defaults[name]
            sources[name] = "default"
        else:
            raise AttributeError(f"No parameter named '{name}'")

    def cli_help(self) -> str:
        """Return help text for command-line usage."""
        defaults = object.__getattribute__(self, "_defaults")

        lines = ["Command-line options (PETSc format):", ""]
        for name, default in defaults.items():
            type_name = type(default).__name__
            lines.append(f"  -{name} <{type_name}>  (default: {default!r})")

        first_name = list(defaults.keys())[0] if defaults else "param"
        lines.extend(["", "Example:", f"  python -m adaptwave -{first_name} <value>"])
        return "\n".join(lines)
