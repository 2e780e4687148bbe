import itertools

import pytest

from ast_nodes import BinaryExpression, Block, Break, Identifier, Program, ScriptStatement
from compiler import Compiler, compile_source
from context import CompileContext
from errors import UnresolvedLabel
from lexer import Lexer
from output import CommandUnit, ConditionalJump, Jump, Label
from parser import parse_program
from resolver import ScopeArena


def compile_ok(source):
    output, errors = compile_source(source)
    if errors:
        raise AssertionError(f"Unexpected errors: {errors}")
    return output


def script_units(output, name):
    # units from the script's label up to (not including) the next script label
    start = next(i for i, u in enumerate(output.units) if isinstance(u, Label) and u.name == name)
    units = [output.units[start]]
    for unit in output.units[start + 1:]:
        if isinstance(unit, Label) and unit.name in output.scripts:
            break
        if not isinstance(unit, (Label, CommandUnit, Jump, ConditionalJump)):
            break
        units.append(unit)
    return [repr(u) for u in units]


# ---------- model interpreter ----------
def compare(kind, actual, operator, value):
    if kind == "flag":
        return actual == (value == "TRUE")
    value = int(value)
    return {
        "==": actual == value,
        "!=": actual != value,
        "<": actual < value,
        "<=": actual <= value,
        ">": actual > value,
        ">=": actual >= value,
    }[operator]


def run(output, script, flags=None, vars=None, max_steps=1000):
    """Execute a compiled script; returns (commands run, operands tested)."""
    flags = flags or {}
    vars = vars or {}
    index = {u.name: i for i, u in enumerate(output.units) if isinstance(u, Label)}
    pc = index[script]
    commands = []
    tested = []

    for _ in range(max_steps):
        if pc >= len(output.units):
            break
        unit = output.units[pc]
        pc += 1
        if isinstance(unit, Label):
            continue
        if isinstance(unit, CommandUnit):
            if unit.name == "end":
                return commands, tested
            commands.append(unit.name)
            if unit.name.startswith("inc_"):
                name = unit.name[len("inc_"):]
                vars[name] = vars.get(name, 0) + 1
            continue
        if isinstance(unit, Jump):
            pc = index[unit.target]
            continue
        if isinstance(unit, ConditionalJump):
            tested.append(unit.operand)
            source = flags if unit.kind == "flag" else vars
            if compare(unit.kind, source.get(unit.operand, 0), unit.operator, unit.value):
                pc = index[unit.target]
            continue
        raise AssertionError(f"Cannot execute {unit!r}")
    raise AssertionError("script did not terminate")


def evaluate(expr, flags, tested):
    # reference short-circuit evaluation over the AST
    if isinstance(expr, BinaryExpression):
        left = evaluate(expr.left, flags, tested)
        if expr.op == "&&":
            return left and evaluate(expr.right, flags, tested)
        return left or evaluate(expr.right, flags, tested)
    tested.append(expr.operand)
    return flags.get(expr.operand, False) == (expr.comparison_value == "TRUE")


# ---------- lowering shapes ----------
def test_if_without_else():
    out = compile_ok(
        "script S {\n"
        "    if (flag(F) == TRUE) {\n"
        "        msgbox(\"Hi\")\n"
        "    }\n"
        "}\n"
    )
    assert script_units(out, "S") == [
        "Label('S', global)",
        "ConditionalJump(flag(F) == TRUE -> S_1)",
        "Jump('S_0')",
        "Label('S_1')",
        "Command('msgbox', ['Text_0'])",
        "Jump('S_0')",
        "Label('S_0')",
        "Command('end', [])",
    ]


def test_if_elif_else_is_first_match_wins():
    out = compile_ok(
        "script S {\n"
        "    if (var(V) == 1) { one }\n"
        "    elif (var(V) == 2) { two }\n"
        "    elif (var(V) >= 2) { big }\n"
        "    else { other }\n"
        "}\n"
    )
    assert run(out, "S", vars={"V": 1})[0] == ["one"]
    assert run(out, "S", vars={"V": 2})[0] == ["two"]
    assert run(out, "S", vars={"V": 7})[0] == ["big"]
    assert run(out, "S", vars={"V": 0})[0] == ["other"]

    # a match stops the remaining tests
    assert run(out, "S", vars={"V": 1})[1] == ["V"]


def test_while_with_break_binds_to_loop_end():
    out = compile_ok(
        "script S {\n"
        "    while (var(V) == 1) {\n"
        "        if (flag(F) == TRUE) {\n"
        "            break\n"
        "        }\n"
        "    }\n"
        "}\n"
    )
    assert script_units(out, "S") == [
        "Label('S', global)",
        "Label('S_0')",
        "ConditionalJump(var(V) != 1 -> S_1)",
        "ConditionalJump(flag(F) == TRUE -> S_3)",
        "Jump('S_2')",
        "Label('S_3')",
        "Jump('S_1')",
        "Jump('S_2')",
        "Label('S_2')",
        "Jump('S_0')",
        "Label('S_1')",
        "Command('end', [])",
    ]


def test_while_loops_until_condition_fails():
    out = compile_ok("script S { while (var(N) < 3) { inc_N } after }")
    commands, _ = run(out, "S")
    assert commands == ["inc_N", "inc_N", "inc_N", "after"]


def test_do_while_tests_after_body():
    out = compile_ok("script S { do { A; } while (var(V) < 5); }")
    assert script_units(out, "S") == [
        "Label('S', global)",
        "Label('S_0')",
        "Command('A', [])",
        "Label('S_1')",
        "ConditionalJump(var(V) < 5 -> S_0)",
        "Label('S_2')",
        "Command('end', [])",
    ]

    # body runs once even when the condition is false from the start
    commands, tested = run(out, "S", vars={"V": 9})
    assert commands == ["A"]
    assert tested == ["V"]


def test_do_while_continue_retests_condition():
    out = compile_ok(
        "script S {\n"
        "    do {\n"
        "        inc_N\n"
        "        if (var(N) < 3) { continue }\n"
        "        body_end\n"
        "    } while (var(N) < 2)\n"
        "    done\n"
        "}\n"
    )
    # N=1 -> continue -> test N<2 true -> N=2 -> continue -> test false -> done
    commands, _ = run(out, "S")
    assert commands == ["inc_N", "inc_N", "done"]


def test_switch_with_default():
    out = compile_ok("script S { switch (var(V)) { case 1: A; case 2: B; default: C; } }")
    assert script_units(out, "S") == [
        "Label('S', global)",
        "ConditionalJump(var(V) == 1 -> S_0)",
        "ConditionalJump(var(V) == 2 -> S_1)",
        "Jump('S_2')",
        "Label('S_0')",
        "Command('A', [])",
        "Jump('S_3')",
        "Label('S_1')",
        "Command('B', [])",
        "Jump('S_3')",
        "Label('S_2')",
        "Command('C', [])",
        "Jump('S_3')",
        "Label('S_3')",
        "Command('end', [])",
    ]


def test_switch_without_default_jumps_to_end():
    out = compile_ok("script S { switch (V) { case 1: A case 2: B } after }")
    assert run(out, "S", vars={"V": 2})[0] == ["B", "after"]
    assert run(out, "S", vars={"V": 5})[0] == ["after"]


def test_switch_cases_do_not_fall_through():
    out = compile_ok("script S { switch (var(V)) { case 1: A case 2: B default: C } }")
    assert run(out, "S", vars={"V": 1})[0] == ["A"]
    assert run(out, "S", vars={"V": 3})[0] == ["C"]


def test_break_in_switch_targets_switch_continue_targets_loop():
    out = compile_ok(
        "script S {\n"
        "    while (var(N) < 3) {\n"
        "        inc_N\n"
        "        switch (var(N)) {\n"
        "            case 1:\n"
        "                continue\n"
        "            case 2:\n"
        "                two\n"
        "                break\n"
        "                unreachable\n"
        "        }\n"
        "        after_switch\n"
        "    }\n"
        "}\n"
    )
    commands, _ = run(out, "S")
    assert commands == ["inc_N", "inc_N", "two", "after_switch", "inc_N", "after_switch"]


# ---------- short-circuit ----------
def test_and_skips_right_operand_when_left_false():
    out = compile_ok("script S { if (flag(A) == TRUE && var(B) == 1) { yes } else { no } }")
    assert run(out, "S", flags={"A": False}, vars={"B": 1}) == (["no"], ["A"])
    assert run(out, "S", flags={"A": True}, vars={"B": 1}) == (["yes"], ["A", "B"])
    assert run(out, "S", flags={"A": True}, vars={"B": 0}) == (["no"], ["A", "B"])


def test_or_skips_right_operand_when_left_true():
    out = compile_ok("script S { if (flag(A) == TRUE || var(B) == 1) { yes } else { no } }")
    assert run(out, "S", flags={"A": True}, vars={"B": 0}) == (["yes"], ["A"])
    assert run(out, "S", flags={"A": False}, vars={"B": 1}) == (["yes"], ["A", "B"])
    assert run(out, "S", flags={"A": False}, vars={"B": 0}) == (["no"], ["A", "B"])


NESTED_CONDITIONS = [
    "(flag(A) == TRUE || flag(B) == TRUE) && (flag(C) == TRUE || flag(D) == FALSE)",
    "flag(A) == TRUE && flag(B) == FALSE || flag(C) == TRUE && flag(D) == TRUE",
    "(flag(A) == TRUE && (flag(B) == TRUE || (flag(C) == FALSE && flag(D) == TRUE)))",
]


def parse_condition(cond):
    program, errors = parse_program(Lexer(f"script S {{ if ({cond}) {{ yes }} }}"))
    assert errors == []
    return program.statements[0].body.statements[0].consequence.expression


def test_nested_conditions_match_short_circuit_semantics():
    for cond in NESTED_CONDITIONS:
        expr = parse_condition(cond)
        jump_on_true = compile_ok(f"script S {{ if ({cond}) {{ yes }} else {{ no }} }}")
        jump_on_false = compile_ok(f"script S {{ while ({cond}) {{ yes; break; }} after }}")

        for values in itertools.product([False, True], repeat=4):
            flags = dict(zip("ABCD", values))
            expected_tested = []
            result = evaluate(expr, flags, expected_tested)

            commands, tested = run(jump_on_true, "S", flags=flags)
            assert commands == (["yes"] if result else ["no"]), (cond, flags)
            assert tested == expected_tested, (cond, flags)

            commands, tested = run(jump_on_false, "S", flags=flags)
            assert commands == (["yes", "after"] if result else ["after"]), (cond, flags)
            assert tested == expected_tested, (cond, flags)


# ---------- labels, texts, data ----------
def test_labels_are_unique_across_scripts():
    body = "if (flag(F) == TRUE && flag(G) == TRUE) { A } elif (var(V) == 1) { B } while (var(V) < 2) { C }"
    source = "\n".join(f"script S{i} {{ {body} {body} }}" for i in range(5))
    out = compile_ok(source)
    names = [u.name for u in out.units if isinstance(u, Label)]
    assert len(names) == len(set(names))


def test_script_named_like_the_text_pool_gets_distinct_labels():
    out = compile_ok('script Text { if (flag(F) == TRUE) { msgbox("a") } }')
    units = [repr(u) for u in out.units]
    expected = [
        "Label('Text', global)",
        "ConditionalJump(flag(F) == TRUE -> Text_2)",
        "Jump('Text_1')",
        "Label('Text_2')",
        "Command('msgbox', ['Text_0'])",
        "Jump('Text_1')",
        "Label('Text_1')",
        "Command('end', [])",
        "DataBlock(text, 'Text_0', ['a'])",
    ]
    if units != expected:
        raise AssertionError(f"Unexpected units.\nEXPECTED: {expected}\nGOT: {units}")


def test_generated_labels_skip_declared_names():
    out = compile_ok("script S { while (var(V) == 1) { A } }\nscript S_0 { end }\n")
    names = [u.name for u in out.units if isinstance(u, Label)]
    if names != ["S", "S_1", "S_2", "S_0"]:
        raise AssertionError(f"Unexpected labels: {names}")


def test_each_compilation_gets_a_fresh_label_counter():
    source = "script S { while (var(V) == 1) { A } }"
    first = [repr(u) for u in compile_ok(source).units]
    second = [repr(u) for u in compile_ok(source).units]
    assert first == second


def test_script_ending_with_end_gets_no_extra_terminator():
    out = compile_ok("script S { lock; release; end; }")
    assert script_units(out, "S") == [
        "Label('S', global)",
        "Command('lock', [])",
        "Command('release', [])",
        "Command('end', [])",
    ]


def test_local_script_label():
    out = compile_ok("script(local) S { end }")
    assert repr(out.units[0]) == "Label('S')"


def test_text_pool_order_explicit_then_implicit():
    out = compile_ok(
        'script S { msgbox("first", MSGBOX_DEFAULT) msgbox("second") }\n'
        'text Greeting { "hello" }\n'
        'text(local) Bye { "bye" }\n'
    )
    texts = [u for u in out.units if getattr(u, "kind", None) == "text"]
    assert [(t.name, t.items[0], t.is_global) for t in texts] == [
        ("Greeting", "hello", True),
        ("Bye", "bye", False),
        ("Text_0", "first", False),
        ("Text_1", "second", False),
    ]
    assert out.texts == ["Greeting", "Bye", "Text_0", "Text_1"]


def test_explicit_text_colliding_with_implicit_label_is_fatal():
    out, errors = compile_source('script S { msgbox("x") }\ntext Text_0 { "y" }\n')
    assert out is None
    assert len(errors) == 1
    assert "duplicate text name 'Text_0'" in errors[0]


def test_movement_mart_and_raw_are_emitted_in_place():
    out = compile_ok(
        "raw `\n.set LOCALID_X, 1\n`\n"
        "movement Walk { walk_left * 2 face_up }\n"
        "mart(local) Shop { ITEM_POTION ITEM_ANTIDOTE }\n"
        "script S { end }\n"
    )
    assert [repr(u) for u in out.units] == [
        "Raw('\\n.set LOCALID_X, 1\\n')",
        "DataBlock(movement, 'Walk', ['walk_left', 'walk_left', 'face_up'])",
        "DataBlock(mart, 'Shop', ['ITEM_POTION', 'ITEM_ANTIDOTE'])",
        "Label('S', global)",
        "Command('end', [])",
    ]
    assert out.units[2].is_global is False


def test_mapscripts_promote_inline_scripts():
    out = compile_ok(
        "mapscripts M {\n"
        "    MAP_SCRIPT_ON_LOAD: M_OnLoad\n"
        "    MAP_SCRIPT_ON_RESUME {\n"
        "        setflag(FLAG_X)\n"
        "    }\n"
        "    MAP_SCRIPT_ON_FRAME_TABLE [\n"
        "        VAR_TEMP_0, 0: M_Frame\n"
        "        VAR_TEMP_1, 1 {\n"
        "            lock\n"
        "        }\n"
        "    ]\n"
        "}\n"
    )
    assert out.units[0].kind == "mapscripts"
    assert out.units[0].items == [
        ("MAP_SCRIPT_ON_LOAD", "M_OnLoad"),
        ("MAP_SCRIPT_ON_RESUME", "M_MAP_SCRIPT_ON_RESUME"),
        ("MAP_SCRIPT_ON_FRAME_TABLE", "M_MAP_SCRIPT_ON_FRAME_TABLE"),
    ]
    assert out.units[1].kind == "mapscripts_table"
    assert out.units[1].name == "M_MAP_SCRIPT_ON_FRAME_TABLE"
    assert out.units[1].items == [
        ("VAR_TEMP_0", "0", "M_Frame"),
        ("VAR_TEMP_1", "1", "M_MAP_SCRIPT_ON_FRAME_TABLE_1"),
    ]
    assert [repr(u) for u in out.units[2:]] == [
        "Label('M_MAP_SCRIPT_ON_RESUME')",
        "Command('setflag', ['FLAG_X'])",
        "Command('end', [])",
        "Label('M_MAP_SCRIPT_ON_FRAME_TABLE_1')",
        "Command('lock', [])",
        "Command('end', [])",
    ]
    assert out.scripts == ["M_MAP_SCRIPT_ON_RESUME", "M_MAP_SCRIPT_ON_FRAME_TABLE_1"]


def test_mapscripts_inline_script_can_loop():
    out = compile_ok(
        "mapscripts M {\n"
        "    MAP_SCRIPT_ON_LOAD {\n"
        "        while (var(N) < 2) { inc_N }\n"
        "    }\n"
        "}\n"
    )
    assert run(out, "M_MAP_SCRIPT_ON_LOAD")[0] == ["inc_N", "inc_N"]


# ---------- failures ----------
def test_unresolved_break_is_fatal_at_emission():
    program = Program([ScriptStatement(Identifier("S"), Block([Break()]))])
    with pytest.raises(UnresolvedLabel):
        Compiler(CompileContext()).compile(program, ScopeArena())


def test_break_outside_loop_reports_line():
    out, errors = compile_source("script S {\n    A\n    break\n}\n")
    assert out is None
    assert errors == ["break used outside of a loop or switch at line 3"]


def test_continue_in_switch_without_loop_is_rejected():
    out, errors = compile_source("script S {\n switch (var(V)) {\n case 1:\n continue\n }\n}\n")
    assert out is None
    assert errors == ["continue used outside of a loop at line 4"]


def test_duplicate_default_produces_no_output():
    out, errors = compile_source("script S { switch (var(V)) { default: A default: B } }")
    assert out is None
    assert len(errors) == 1
    assert "multiple 'default' cases" in errors[0]


def test_two_declarations_with_one_name_are_reported():
    out, errors = compile_source("script S { end }\nmovement S { walk_up }\n")
    if out is not None or len(errors) != 1 or "label already defined: S" not in errors[0]:
        raise AssertionError(f"Expected duplicate label error, got {errors}")
