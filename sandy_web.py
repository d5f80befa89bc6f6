# sandy_web.py
from flask import Flask, Response, jsonify, render_template_string, request, stream_with_context
import json
import logging
import os
import time

from chat_relay import RelayError, open_stream
from chat_render import ThinkingClock, render_assistant, render_transcript
from think_stream import ThinkScanner, parse_message

logger = logging.getLogger(__name__)

app = Flask(__name__)

APP_TITLE = "SandyAI"
GREETING = "Hi, I'm your Local AI Assistant."
ROLES = {"user", "assistant", "system"}

STREAM_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


def parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def get_messages(payload):
    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        return None
    cleaned = []
    for item in messages:
        if not isinstance(item, dict) or item.get("role") not in ROLES:
            return None
        cleaned.append({"role": item["role"], "content": str(item.get("content") or "")})
    return cleaned


def sse(payload):
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def bad_request():
    return jsonify({"error": "Expected a JSON body with a non-empty 'messages' list."}), 400


@app.route("/")
def index():
    return render_template_string(HTML, title=APP_TITLE, greeting=GREETING)


@app.post("/api/deepseek/chat")
def chat():
    payload = request.get_json(silent=True) or {}
    messages = get_messages(payload)
    if messages is None:
        return bad_request()

    try:
        chunks = open_stream(messages)
    except RelayError as exc:
        return jsonify({"error": str(exc)}), 502

    def generate():
        try:
            yield from chunks
        except RelayError:
            # headers are already sent; the truncated body is all the client gets
            logger.exception("Relay stream aborted")

    response = Response(
        stream_with_context(generate()),
        mimetype="text/plain",
        headers=STREAM_HEADERS,
    )
    response.call_on_close(chunks.close)
    return response


@app.post("/api/deepseek/view")
def view():
    payload = request.get_json(silent=True) or {}
    messages = get_messages(payload)
    if messages is None:
        return bad_request()
    is_open = parse_bool(payload.get("open", True))

    def generate():
        started = time.time()
        scanner = ThinkScanner()
        clock = ThinkingClock()
        chunk_count = 0

        yield sse({"transcript": str(render_transcript(messages, is_open=is_open))})
        try:
            chunks = open_stream(messages)
        except RelayError as exc:
            yield sse({"error": str(exc), "done": True})
            return
        try:
            for chunk in chunks:
                chunk_count += 1
                state = scanner.feed(chunk)
                clock.observe(state, scanner.saw_open_tag)
                seconds = clock.elapsed()
                html = render_assistant(
                    state,
                    is_open=is_open,
                    streaming=True,
                    thinking_seconds=seconds,
                )
                event = state.to_dict()
                event.update(delta=chunk, html=str(html), thinking_seconds=seconds)
                yield sse(event)
        except RelayError as exc:
            yield sse({"error": str(exc), "done": True})
            return
        finally:
            chunks.close()

        text = scanner.text
        final = render_assistant(
            parse_message(text),
            is_open=is_open,
            thinking_seconds=clock.elapsed(),
        )
        yield sse(
            {
                "done": True,
                "content": text,
                "html": str(final),
                "meta": {
                    "elapsed_ms": int((time.time() - started) * 1000),
                    "chunks": chunk_count,
                },
            }
        )

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers=STREAM_HEADERS,
    )


HTML = """
<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width,initial-scale=1" />
<title>{{ title }}</title>
<style>
:root{
  --bg:#000;
  --panel:#1f2937;
  --line:#fff;
  --text:#e5e7eb;
  --muted:#9ca3af;
  --danger:#f87171;
}
*{box-sizing:border-box}
html,body{
  height:100%;
  margin:0;
  font-family:ui-monospace,SFMono-Regular,Menlo,Consolas,monospace;
  background:var(--bg);
  color:var(--text);
}
.title{
  position:fixed;
  top:24px;
  left:28px;
  font-size:36px;
  color:#e5e7eb;
  z-index:20;
}
#chat{
  height:100vh;
  overflow-y:auto;
  padding:96px 16px 128px;
}
#transcript,#pending{
  max-width:55%;
  margin:0 auto;
  display:flex;
  flex-direction:column;
  gap:24px;
}
#pending{margin-top:24px}
.msg.user{
  display:flex;
  justify-content:flex-end;
}
.msg.user .bubble{
  max-width:80%;
  padding:8px 16px;
  background:#fff;
  color:#000;
  font-weight:700;
  white-space:pre-wrap;
}
.msg.assistant{
  display:flex;
  flex-direction:column;
}
details.thinking{margin-bottom:16px}
details.thinking summary{
  cursor:pointer;
  font-size:14px;
  color:#fff;
  padding:8px;
  border:2px solid var(--line);
  display:flex;
  align-items:center;
  gap:8px;
  user-select:none;
  list-style:none;
}
details.thinking summary:hover{background:#262626}
.chevron{width:12px;height:12px;transform:rotate(-90deg);transition:transform .15s}
details.thinking[open] .chevron{transform:rotate(0)}
.thinking-body{
  margin-top:8px;
  padding-left:16px;
  border-left:2px solid var(--line);
  font-size:14px;
  color:var(--muted);
  white-space:pre-wrap;
}
.answer{color:#d1d5db}
.markdown p{white-space:pre-wrap}
.markdown pre{
  overflow:auto;
  margin:16px 0;
  padding:8px;
  background:var(--panel);
  border-radius:4px;
  color:#f3f4f6;
}
.markdown :not(pre) > code{
  background:var(--panel);
  color:#f3f4f6;
  border-radius:4px;
  padding:0 4px;
}
.markdown ul{list-style:disc;padding-left:16px;margin:8px 0}
.markdown ol{list-style:decimal;padding-left:16px;margin:8px 0}
.markdown li{margin:4px 0}
.error{color:var(--danger)}
#endMarker{height:1px}
.composer{
  position:fixed;
  bottom:0;
  left:0;
  right:0;
  padding:24px 16px;
  background:var(--bg);
  transition:all .5s ease-in-out;
}
.composer .inner{max-width:60%;margin:0 auto}
.composer.empty{
  top:50%;
  bottom:auto;
  left:50%;
  right:auto;
  width:45%;
  transform:translate(-50%,-50%);
  background:transparent;
}
.composer.empty .inner{max-width:none}
.greeting{
  font-size:36px;
  font-weight:300;
  text-align:center;
  margin-bottom:32px;
  color:#d1d5db;
}
.composer:not(.empty) .greeting{display:none}
.inputWrap{position:relative}
.inputWrap input{
  width:100%;
  padding:16px 128px 16px 16px;
  background:transparent;
  color:#fff;
  font:inherit;
  border:2px solid var(--line);
  outline:none;
}
.inputWrap input::placeholder{color:rgba(255,255,255,0.6)}
.buttons{
  position:absolute;
  right:12px;
  top:50%;
  transform:translateY(-50%);
  display:flex;
  gap:8px;
}
.btn{
  padding:8px 14px;
  background:transparent;
  border:1px solid var(--line);
  color:#fff;
  font:inherit;
  cursor:pointer;
}
.btn:hover:not(:disabled){background:#fff;color:#000}
.btn:disabled{opacity:.5;cursor:not-allowed}
@media (max-width:980px){
  #transcript,#pending,.composer .inner{max-width:100%}
  .composer.empty{width:90%}
}
</style>
</head>
<body>
  <div class="title">{{ title }}</div>

  <div id="chat" role="log" aria-live="polite">
    <div id="transcript"></div>
    <div id="pending"></div>
    <div id="endMarker"></div>
  </div>

  <div id="composer" class="composer empty">
    <div class="inner">
      <h1 class="greeting">{{ greeting | e }}</h1>
      <form id="form">
        <div class="inputWrap">
          <input id="input" autocomplete="off" placeholder="What do you want to know?" />
          <div class="buttons">
            <button id="stopBtn" type="button" class="btn" disabled>Stop</button>
            <button id="sendBtn" type="submit" class="btn">Send</button>
          </div>
        </div>
      </form>
    </div>
  </div>

<script>
const chat = document.getElementById("chat");
const transcript = document.getElementById("transcript");
const pending = document.getElementById("pending");
const endMarker = document.getElementById("endMarker");
const composer = document.getElementById("composer");
const form = document.getElementById("form");
const input = document.getElementById("input");
const sendBtn = document.getElementById("sendBtn");
const stopBtn = document.getElementById("stopBtn");

let messages = [];
let isOpen = true;
let isLoading = false;
let abortController = null;
let lastHtml = "";
let partialText = "";
let settled = false;

function scrollToBottom(){
  endMarker.scrollIntoView({behavior: "smooth"});
}

function applyOpenState(root){
  root.querySelectorAll("details.thinking").forEach((el) => { el.open = isOpen; });
}

function updateControls(){
  sendBtn.disabled = isLoading;
  stopBtn.disabled = !isLoading;
  composer.classList.toggle("empty", messages.length === 0);
  input.placeholder = messages.length === 0 ? "What do you want to know?" : "Ask anything...";
}

function showPending(html){
  if(html === lastHtml) return;
  lastHtml = html;
  pending.innerHTML = html;
  applyOpenState(pending);
  requestAnimationFrame(scrollToBottom);
}

function showError(message){
  const el = document.createElement("div");
  el.className = "error";
  el.textContent = `[Error] ${message}`;
  pending.appendChild(el);
  scrollToBottom();
}

function commitPending(){
  while(pending.firstChild){
    transcript.appendChild(pending.firstChild);
  }
  lastHtml = "";
}

function settleInterrupted(){
  // keep the transcript alternating: a cut-off reply is kept as it stands,
  // an unanswered user turn is dropped
  if(partialText){
    messages.push({role: "assistant", content: partialText});
  } else if(messages.length && messages[messages.length - 1].role === "user"){
    messages.pop();
  }
  commitPending();
}

function processEventBlock(block){
  const lines = block.split("\\n").filter((line) => line.startsWith("data:"));
  if(!lines.length) return;

  const payload = lines.map((line) => line.slice(5).trim()).join("\\n");
  let data;
  try {
    data = JSON.parse(payload);
  } catch (_) {
    return;
  }

  if(data.transcript !== undefined){
    transcript.innerHTML = data.transcript;
    applyOpenState(transcript);
    requestAnimationFrame(scrollToBottom);
  }
  if(data.error){
    showError(data.error);
    return;
  }
  if(data.delta){
    partialText += data.delta;
  }
  if(data.html){
    showPending(data.html);
  }
  if(data.done && data.content !== undefined){
    settled = true;
    messages.push({role: "assistant", content: data.content});
    commitPending();
  }
}

function parseSSE(bufferText){
  let work = bufferText.replace(/\\r/g, "");
  let marker = work.indexOf("\\n\\n");
  while(marker !== -1){
    const block = work.slice(0, marker).trim();
    work = work.slice(marker + 2);
    if(block) processEventBlock(block);
    marker = work.indexOf("\\n\\n");
  }
  return work;
}

async function streamView(){
  abortController = new AbortController();
  isLoading = true;
  partialText = "";
  settled = false;
  updateControls();

  try {
    const resp = await fetch("/api/deepseek/view", {
      method: "POST",
      headers: {"Content-Type": "application/json"},
      body: JSON.stringify({messages, open: isOpen}),
      signal: abortController.signal
    });
    if(!resp.ok || !resp.body){
      throw new Error(`Request failed (${resp.status})`);
    }

    const reader = resp.body.getReader();
    const decoder = new TextDecoder();
    let pendingText = "";

    while(true){
      const {value, done} = await reader.read();
      if(done) break;
      pendingText += decoder.decode(value, {stream: true});
      pendingText = parseSSE(pendingText);
    }
    if(pendingText.trim()){
      parseSSE(pendingText + "\\n\\n");
    }
  } catch (err) {
    if(!(err && err.name === "AbortError")){
      showError(err && err.message ? err.message : "Unknown error");
    }
  } finally {
    if(!settled){
      settleInterrupted();
    }
    isLoading = false;
    abortController = null;
    updateControls();
  }
}

function send(event){
  event.preventDefault();
  if(isLoading) return;
  const text = input.value.trim();
  if(!text) return;

  input.value = "";
  commitPending();
  messages.push({role: "user", content: text});
  streamView();
}

function stop(){
  if(abortController){
    abortController.abort();
  }
}

chat.addEventListener("toggle", (e) => {
  if(!(e.target instanceof HTMLDetailsElement)) return;
  if(e.target.open === isOpen) return;
  isOpen = e.target.open;
  applyOpenState(chat);
}, true);

form.addEventListener("submit", send);
stopBtn.addEventListener("click", stop);

updateControls();
input.focus();
</script>
</body>
</html>
"""

if __name__ == "__main__":
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.run(debug=True, port=int(os.getenv("PORT", 5000)), threaded=True)
