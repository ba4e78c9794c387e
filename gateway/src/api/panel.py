"""
Browser control panel for the Axpert gateway.

``GET /control`` serves a single static HTML page.  Its script lists the
inverters from ``GET /api/inverters`` and sends commands to
``POST /api/command/{command}`` after a confirmation dialog.  It then shows
the ``status``/``message`` of the response.  The page holds no state and
bypasses nothing: with the control API disabled every button reports the
403 answer.

The priority buttons are generated from the canonical token enums, so the
page always offers exactly the values the command validator accepts.

CHANGELOG:
- 2026-03-12: Initial creation (STORY-016)

TODO:
- None
"""

from html import escape

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

from gateway.src.commands import RECHARGE_VOLTAGE_RANGE, REDISCHARGE_VOLTAGE_RANGE
from gateway.src.mappings import ChargerSourcePriority, OutputSourcePriority

router = APIRouter(tags=["panel"])

_OUTPUT_LABELS = {
    OutputSourcePriority.UTILITY: "Utility first",
    OutputSourcePriority.SOLAR: "Solar first",
    OutputSourcePriority.SBU: "SBU first",
}

_CHARGER_LABELS = {
    ChargerSourcePriority.UTILITY_FIRST: "Utility first",
    ChargerSourcePriority.SOLAR_FIRST: "Solar first",
    ChargerSourcePriority.SOLAR_AND_UTILITY: "Solar and utility",
    ChargerSourcePriority.SOLAR_ONLY: "Solar only",
}


def _buttons(command: str, labels: dict) -> str:
    return "\n".join(
        f'<button class="control-btn" data-command="{command}" '
        f'data-value="{escape(token.value, quote=True)}">{escape(label)}</button>'
        for token, label in labels.items()
    )


def _voltage_form(command: str, title: str, bounds: tuple[int, int]) -> str:
    lo, hi = bounds
    return (
        f'<div class="voltage"><label>{title} ({lo}-{hi} V) '
        f'<input type="number" step="1" min="{lo}" max="{hi}" '
        f'data-voltage-for="{command}"></label>'
        f'<button class="voltage-btn" data-command="{command}">Set</button></div>'
    )


_SCRIPT = """
const select = document.getElementById("inverterSelect");
const status = document.getElementById("statusDisplay");

function showStatus(kind, message) {
  status.className = "status " + kind;
  status.textContent = message;
}

async function loadInverters() {
  select.innerHTML = '<option value="">Loading inverters...</option>';
  try {
    const response = await fetch("/api/inverters");
    if (!response.ok) throw new Error("HTTP " + response.status);
    const data = await response.json();
    select.innerHTML = '<option value="">Select an inverter...</option>';
    for (const inverter of data.inverters) {
      const option = document.createElement("option");
      option.value = inverter.serialno;
      option.textContent = "Inverter " + inverter.serialno;
      select.appendChild(option);
    }
    if (data.count === 0) showStatus("error", "No inverters found");
  } catch (err) {
    select.innerHTML = '<option value="">Failed to load inverters</option>';
    showStatus("error", "Failed to load inverters");
  }
}

async function executeCommand(command, value) {
  const serialno = select.value;
  if (!serialno) {
    showStatus("error", "Please select an inverter first");
    return;
  }
  if (!value) {
    showStatus("error", "Please enter a value");
    return;
  }
  const question = "Inverter: " + serialno + "\\nCommand: " + command +
    "\\nValue: " + value + "\\n\\nThis changes the inverter settings immediately. Proceed?";
  if (!confirm(question)) {
    showStatus("error", "Command cancelled");
    return;
  }
  try {
    const response = await fetch("/api/command/" + command, {
      method: "POST",
      headers: {"Content-Type": "application/json"},
      body: JSON.stringify({value: value, serialno: serialno}),
    });
    const result = await response.json();
    if (response.ok && result.status === "success") {
      showStatus("success", command + ": " + value);
    } else {
      showStatus("error", result.message || result.detail || "Command failed");
    }
  } catch (err) {
    showStatus("error", "Network error - please try again");
  }
}

document.querySelectorAll(".control-btn").forEach((button) => {
  button.addEventListener("click", () =>
    executeCommand(button.dataset.command, button.dataset.value));
});
document.querySelectorAll(".voltage-btn").forEach((button) => {
  const input = document.querySelector(
    'input[data-voltage-for="' + button.dataset.command + '"]');
  button.addEventListener("click", () =>
    executeCommand(button.dataset.command, input.value.trim()));
});

loadInverters();
"""

CONTROL_PAGE = f"""<html>
<head>
<title>axpert-gateway control</title>
<style>
.status.success {{ color: green; }}
.status.error {{ color: red; }}
</style>
</head>
<body>
<h1>Axpert inverter control</h1>
<p><select id="inverterSelect"></select></p>
<h2>Output source priority</h2>
{_buttons('setOutputPriority', _OUTPUT_LABELS)}
<h2>Charger source priority</h2>
{_buttons('setChargerPriority', _CHARGER_LABELS)}
<h2>Battery voltages</h2>
{_voltage_form('setBatteryRechargeVoltage', 'Recharge voltage', RECHARGE_VOLTAGE_RANGE)}
{_voltage_form('setBatteryRedischargeVoltage', 'Redischarge voltage', REDISCHARGE_VOLTAGE_RANGE)}
<p id="statusDisplay" class="status"></p>
<script>{_SCRIPT}</script>
</body>
</html>
"""


@router.get("/control", response_class=HTMLResponse)
async def control_panel() -> str:
    """Serve the static control panel page."""
    return CONTROL_PAGE
