from __future__ import annotations

from md2slack.pipeline.operations import EDIT_ACTIONS


def render_homepage(*, app_name: str) -> str:
    action_buttons = "\n".join(
        f'        <button class="ghost" data-action="{name}">{name.replace("_", " ")}</button>'
        for name in EDIT_ACTIONS
    )
    return f"""
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{app_name} Daily Report</title>
  <style>
    :root {{
      --bg: #eef2f3;
      --panel: #ffffff;
      --ink: #1c2a38;
      --muted: #5d6d79;
      --line: #d5dde2;
      --accent: #146c94;
      --ok: #1f7a42;
      --err: #a4202c;
      --warn: #8a6a00;
    }}
    * {{ box-sizing: border-box; }}
    body {{
      margin: 0;
      font-family: system-ui, sans-serif;
      color: var(--ink);
      background: var(--bg);
    }}
    .wrap {{
      max-width: 1200px;
      margin: 22px auto 40px;
      padding: 0 16px;
      display: grid;
      grid-template-columns: 1fr 1fr;
      gap: 16px;
    }}
    .card {{
      background: var(--panel);
      border: 1px solid var(--line);
      border-radius: 14px;
      padding: 16px;
    }}
    .wide {{ grid-column: 1 / -1; }}
    h1 {{ margin: 0 0 6px; font-size: 1.5rem; }}
    h2 {{ margin: 0 0 10px; font-size: 1.05rem; }}
    label {{ font-size: 0.85rem; color: var(--muted); display: block; margin-top: 8px; }}
    input, textarea, select {{
      width: 100%;
      padding: 7px 9px;
      border: 1px solid var(--line);
      border-radius: 8px;
      font: inherit;
    }}
    textarea {{ min-height: 64px; resize: vertical; }}
    button {{
      margin-top: 10px;
      padding: 7px 14px;
      border: 0;
      border-radius: 8px;
      background: var(--accent);
      color: #fff;
      font: inherit;
      cursor: pointer;
    }}
    button.ghost {{ background: transparent; color: var(--accent); border: 1px solid var(--accent); }}
    button:disabled {{ opacity: 0.5; cursor: default; }}
    .row {{ display: flex; gap: 8px; flex-wrap: wrap; align-items: end; }}
    .row > * {{ flex: 1; min-width: 140px; }}
    .stage {{ display: flex; justify-content: space-between; padding: 4px 0; border-bottom: 1px dashed var(--line); }}
    .stage .status-done {{ color: var(--ok); }}
    .stage .status-running {{ color: var(--warn); }}
    .stage .status-failed {{ color: var(--err); }}
    .task {{ border: 1px solid var(--line); border-radius: 10px; padding: 8px; margin-bottom: 8px; }}
    .task.manual {{ border-left: 4px solid var(--accent); }}
    .mono {{ font-family: ui-monospace, monospace; font-size: 0.82rem; white-space: pre-wrap; }}
    .logs {{ max-height: 220px; overflow: auto; background: #f7f9fa; padding: 8px; border-radius: 8px; }}
    .errors {{ color: var(--err); }}
    .chat {{ max-height: 260px; overflow: auto; }}
    .chat .assistant {{ color: var(--accent); }}
    .muted {{ color: var(--muted); font-size: 0.85rem; }}
  </style>
</head>
<body>
  <div class="wrap">
    <section class="card wide">
      <h1>{app_name}</h1>
      <div class="muted" id="status-line">Idle</div>
      <div class="row">
        <div><label for="date">Date (MM-DD-YYYY)</label><input id="date"></div>
        <div><label for="repo">Repository</label><select id="repo"></select></div>
        <div><label for="author">Author</label><select id="author"><option value="">(git config)</option></select></div>
      </div>
      <label for="extra">Extra context</label>
      <textarea id="extra" placeholder="Meetings, reviews, anything not in the commits"></textarea>
      <div class="row">
        <button id="run">Run</button>
        <button class="ghost" id="load">Load history</button>
        <button class="ghost" id="clear">Clear tasks</button>
        <button class="ghost" id="send">Send to Slack</button>
      </div>
    </section>

    <section class="card">
      <h2>Stages</h2>
      <div id="stages"></div>
      <h2 style="margin-top:14px">Errors</h2>
      <div class="mono errors" id="errors"></div>
    </section>

    <section class="card">
      <h2>Report</h2>
      <div id="report"></div>
    </section>

    <section class="card">
      <h2>Tasks</h2>
      <div id="tasks"></div>
      <div class="row">
{action_buttons}
      </div>
      <label for="refine-prompt">Refine all tasks</label>
      <textarea id="refine-prompt" placeholder="e.g. merge the two auth tasks"></textarea>
      <button id="refine">Refine</button>
    </section>

    <section class="card">
      <h2>Chat</h2>
      <div class="chat" id="chat"></div>
      <textarea id="chat-input" placeholder="Ask to edit, split or merge tasks"></textarea>
      <button id="chat-send">Send</button>
    </section>

    <section class="card wide">
      <h2>Logs</h2>
      <div class="mono logs" id="logs"></div>
    </section>
  </div>

  <script>
    const state = {{ tasks: [], selected: new Set(), chat: [], editing: false }};
    const $ = (id) => document.getElementById(id);

    async function api(url, body) {{
      const res = await fetch(url, {{
        method: body === undefined ? "GET" : "POST",
        headers: {{ "Content-Type": "application/json" }},
        body: body === undefined ? undefined : JSON.stringify(body),
      }});
      if (!res.ok) {{
        const detail = await res.json().catch(() => ({{ detail: res.statusText }}));
        throw new Error(detail.detail || res.statusText);
      }}
      return res.status === 204 ? null : res.json();
    }}

    function flash(message) {{
      $("status-line").textContent = message;
    }}

    function escapeHtml(text) {{
      return String(text).replace(/[&<>"]/g, (c) => ({{ "&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;" }}[c]));
    }}

    function renderStages(stages) {{
      $("stages").innerHTML = stages.map((s) =>
        `<div class="stage"><span>${{escapeHtml(s.name)}}</span>` +
        `<span class="status-${{s.status}}">${{s.status}} ${{escapeHtml(s.note || "")}}</span></div>`
      ).join("");
    }}

    function renderTasks(tasks) {{
      if (state.editing) return;
      state.tasks = tasks;
      $("tasks").innerHTML = tasks.map((t, i) =>
        `<div class="task ${{t.is_manual ? "manual" : ""}}">` +
        `<label><input type="checkbox" data-index="${{i}}" ${{state.selected.has(i) ? "checked" : ""}} style="width:auto"> ` +
        `#${{i}} <input data-field="intent" data-index="${{i}}" value="${{escapeHtml(t.intent)}}"></label>` +
        `<div class="row"><input data-field="scope" data-index="${{i}}" value="${{escapeHtml(t.scope)}}">` +
        `<input data-field="estimated_hours" data-index="${{i}}" type="number" min="0" value="${{t.estimated_hours}}">` +
        `<input data-field="status" data-index="${{i}}" value="${{escapeHtml(t.status)}}"></div>` +
        `<textarea data-field="details" data-index="${{i}}">${{escapeHtml(t.details)}}</textarea>` +
        `<div class="muted">commits: ${{t.commits.map(escapeHtml).join(", ") || "-"}}</div></div>`
      ).join("");
    }}

    async function refresh() {{
      try {{
        const s = await api("/state");
        renderStages(s.stages);
        renderTasks(s.tasks);
        $("report").innerHTML = s.report_html || "<em>(empty)</em>";
        $("logs").textContent = s.logs.join("\\n");
        $("errors").textContent = s.errors.join("\\n");
        $("run").disabled = s.running;
        if (s.status_line) flash(s.status_line);
        else flash(s.running ? "Running..." : "Idle");
      }} catch (err) {{
        flash(`State unavailable: ${{err.message}}`);
      }}
    }}

    async function loadWorkspace() {{
      const view = await api("/settings");
      const repos = view.projects.map((p) => `<option value="${{escapeHtml(p.path)}}">${{escapeHtml(p.name)}}</option>`);
      $("repo").innerHTML = repos.join("") || '<option value="">(current directory)</option>';
      if (view.current_project) $("repo").value = view.current_project;
      await loadUsers();
    }}

    async function loadUsers() {{
      const path = $("repo").value;
      if (!path) return;
      try {{
        const res = await api("/scan-users", {{ path }});
        $("author").innerHTML = '<option value="">(git config)</option>' +
          res.usernames.map((u) => `<option>${{escapeHtml(u)}}</option>`).join("");
      }} catch (err) {{
        flash(err.message);
      }}
    }}

    function today() {{
      const d = new Date();
      const pad = (n) => String(n).padStart(2, "0");
      return `${{pad(d.getMonth() + 1)}}-${{pad(d.getDate())}}-${{d.getFullYear()}}`;
    }}

    async function guarded(fn) {{
      try {{
        await fn();
      }} catch (err) {{
        flash(err.message);
      }}
      await refresh();
    }}

    $("run").onclick = () => guarded(() => api("/run", {{
      date: $("date").value, repo_path: $("repo").value, author: $("author").value, extra_context: $("extra").value,
    }}));
    $("load").onclick = () => guarded(async () => {{
      const query = new URLSearchParams({{ repo: $("repo").value || ".", date: $("date").value }});
      await api(`/load-history?${{query}}`);
    }});
    $("clear").onclick = () => guarded(async () => {{
      const query = new URLSearchParams({{ repo: $("repo").value || ".", date: $("date").value }});
      await api(`/clear-tasks?${{query}}`, {{}});
    }});
    $("send").onclick = () => guarded(async () => {{ await api("/send", {{}}); flash("Sent"); }});
    $("refine").onclick = () => guarded(() => api("/refine", {{ prompt: $("refine-prompt").value }}));
    $("repo").onchange = loadUsers;

    document.querySelectorAll("[data-action]").forEach((button) => {{
      button.onclick = () => guarded(async () => {{
        await api("/action", {{ action: button.dataset.action, selected: [...state.selected].sort((a, b) => a - b) }});
        state.selected.clear();
      }});
    }});

    $("tasks").addEventListener("change", (event) => {{
      const el = event.target;
      const index = Number(el.dataset.index);
      if (el.type === "checkbox") {{
        if (el.checked) state.selected.add(index); else state.selected.delete(index);
        return;
      }}
      const task = {{ ...state.tasks[index] }};
      task[el.dataset.field] = el.dataset.field === "estimated_hours" ? Number(el.value) : el.value;
      state.editing = false;
      guarded(() => api("/update-task", {{ index, task }}));
    }});
    $("tasks").addEventListener("focusin", () => {{ state.editing = true; }});
    $("tasks").addEventListener("focusout", () => {{ state.editing = false; }});

    $("chat-send").onclick = () => guarded(async () => {{
      const text = $("chat-input").value.trim();
      if (!text) return;
      state.chat.push({{ role: "user", content: text }});
      $("chat-input").value = "";
      const res = await api("/chat", {{ history: state.chat }});
      state.chat.push(res.message);
      $("chat").innerHTML = state.chat.map((m) =>
        `<div class="${{m.role}}"><b>${{m.role}}:</b> ${{escapeHtml(m.content)}}</div>`
      ).join("");
    }});

    $("date").value = today();
    loadWorkspace().catch((err) => flash(err.message));
    refresh();
    setInterval(refresh, 1500);
  </script>
</body>
</html>
"""
