from output import Label, CommandUnit, Jump, ConditionalJump, RawUnit, DataBlock


VAR_BRANCHES = {
    "==": "goto_if_eq",
    "!=": "goto_if_ne",
    "<": "goto_if_lt",
    "<=": "goto_if_le",
    ">": "goto_if_gt",
    ">=": "goto_if_ge",
}


def label_line(name, is_global):
    return f"{name}::" if is_global else f"{name}:"


def format_conditional(unit):
    if unit.kind == "flag":
        op = "goto_if_set" if unit.value == "TRUE" else "goto_if_unset"
        return [f"\t{op} {unit.operand}, {unit.target}"]
    if unit.operator not in VAR_BRANCHES:
        raise Exception(f"Unknown operator: {unit.operator}")
    return [
        f"\tcompare {unit.operand}, {unit.value}",
        f"\t{VAR_BRANCHES[unit.operator]} {unit.target}",
    ]


def format_data_block(block):
    head = label_line(block.name, block.is_global)

    if block.kind == "text":
        value = block.items[0]
        if not value.endswith("$"):
            value += "$"
        directive = f".{block.string_type}" if block.string_type else ".string"
        return [head, f'\t{directive} "{value}"']

    if block.kind == "movement":
        return [head] + [f"\t{cmd}" for cmd in block.items] + ["\tstep_end"]

    if block.kind == "mart":
        return ["\t.align 2", head] + [f"\t.2byte {item}" for item in block.items] + ["\t.2byte ITEM_NONE"]

    if block.kind == "mapscripts":
        rows = [f"\tmap_script {type_}, {label}" for type_, label in block.items]
        return [head] + rows + ["\t.byte 0"]

    if block.kind == "mapscripts_table":
        rows = [f"\tmap_script_2 {cond}, {value}, {label}" for cond, value, label in block.items]
        return [head] + rows + ["\t.2byte 0"]

    raise Exception(f"Unknown data block kind: {block.kind}")


def format_program(output):
    """Render output units as engine assembler text, keeping unit order."""
    scripts = set(output.scripts)
    lines = []

    def separate():
        if lines and lines[-1] != "":
            lines.append("")

    for unit in output.units:
        if isinstance(unit, Label):
            if unit.name in scripts:
                separate()
            lines.append(label_line(unit.name, unit.is_global))
        elif isinstance(unit, CommandUnit):
            if unit.args:
                lines.append(f"\t{unit.name} {', '.join(unit.args)}")
            else:
                lines.append(f"\t{unit.name}")
        elif isinstance(unit, Jump):
            lines.append(f"\tgoto {unit.target}")
        elif isinstance(unit, ConditionalJump):
            lines.extend(format_conditional(unit))
        elif isinstance(unit, RawUnit):
            separate()
            lines.append(unit.value.strip("\n"))
        elif isinstance(unit, DataBlock):
            separate()
            lines.extend(format_data_block(unit))
        else:
            raise Exception(f"Unknown output unit: {unit.__class__.__name__}")

    return "\n".join(lines).strip("\n") + "\n"
