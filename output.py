from errors import DuplicateLabel


class Label:
    def __init__(self, name, is_global=False):
        self.name = name
        self.is_global = is_global

    def __repr__(self):
        return f"Label({self.name!r}{', global' if self.is_global else ''})"


class CommandUnit:
    def __init__(self, name, args=None):
        self.name = name
        self.args = list(args) if args is not None else []

    def __repr__(self):
        return f"Command({self.name!r}, {self.args!r})"


class Jump:
    def __init__(self, target):
        self.target = target

    def __repr__(self):
        return f"Jump({self.target!r})"


class ConditionalJump:
    # Branch to target when `kind(operand) operator value` holds.
    def __init__(self, kind, operand, operator, value, target):
        self.kind = kind  # "flag" or "var"
        self.operand = operand
        self.operator = operator
        self.value = value
        self.target = target

    def __repr__(self):
        return f"ConditionalJump({self.kind}({self.operand}) {self.operator} {self.value} -> {self.target})"


class RawUnit:
    def __init__(self, value, is_global=False):
        self.value = value
        self.is_global = is_global

    def __repr__(self):
        return f"Raw({self.value!r})"


class DataBlock:
    # kind: "text", "movement", "mart", "mapscripts", "mapscripts_table"
    def __init__(self, kind, name, items, is_global=False, string_type=None):
        self.kind = kind
        self.name = name
        self.items = items
        self.is_global = is_global
        self.string_type = string_type

    def __repr__(self):
        return f"DataBlock({self.kind}, {self.name!r}, {self.items!r})"


class OutputProgram:
    def __init__(self):
        self.units = []          # ordered output units
        self.labels = set()      # every label name defined so far
        self.scripts = []        # script names, emission order
        self.texts = []          # text pool names, emission order

    def emit(self, unit, line=None):
        # returns unit index
        if isinstance(unit, (Label, DataBlock)):
            if unit.name in self.labels:
                raise DuplicateLabel(f"label already defined: {unit.name}", line)
            self.labels.add(unit.name)
        self.units.append(unit)
        return len(self.units) - 1

    def last_unit(self):
        return self.units[-1] if self.units else None
