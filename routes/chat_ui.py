import json

from flask import Blueprint, Response, request

from utils.helpers import DataHelpers

chat_ui_bp = Blueprint('chat_ui', __name__)


@chat_ui_bp.route('/chat/ui', methods=['GET'])
def chat_ui():
    shop = DataHelpers.clean_domain_for_storage(request.args.get("shop", ""))
    html = _build_html_page({"shop": shop})
    return Response(html, mimetype="text/html; charset=utf-8")


def _build_html_page(config):
    # "</" would end the script block early
    config_json = json.dumps(config).replace("</", "<\\/")
    return _PAGE_TEMPLATE.replace("__CONFIG__", config_json)


_PAGE_TEMPLATE = """
<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>Shopping Assistant</title>
    <style>
      :root {
        color-scheme: light dark;
        --primary: #008060;
        --surface: #f6f6f7;
        --border: #8883;
        --text-secondary: #6d7175;
      }

      * { box-sizing: border-box; }

      body {
        margin: 0;
        font-family: system-ui, -apple-system, "Segoe UI", Roboto, Helvetica, Arial, sans-serif;
        background: #fff;
        color: #202223;
      }

      @media (prefers-color-scheme: dark) {
        body { background: #1a1a1a; color: #e0e0e0; }
        :root { --surface: #2a2a2a; }
      }

      .panel {
        max-width: 560px;
        margin: 0 auto;
        padding: 16px;
        height: 100vh;
        display: flex;
        flex-direction: column;
        gap: 12px;
      }

      header {
        display: flex;
        justify-content: space-between;
        align-items: center;
        border-bottom: 1px solid var(--border);
        padding-bottom: 12px;
      }

      h1 { margin: 0; font-size: 18px; font-weight: 600; }

      .status { font-size: 13px; color: var(--text-secondary); }
      .status.error { color: #d72c0d; }

      .messages {
        flex: 1;
        overflow-y: auto;
        background: var(--surface);
        border-radius: 8px;
        padding: 16px;
        display: flex;
        flex-direction: column;
        gap: 10px;
      }

      .welcome { text-align: center; color: var(--text-secondary); font-size: 14px; }

      .bubble {
        max-width: 75%;
        padding: 10px 12px;
        border-radius: 12px;
        white-space: pre-wrap;
        word-wrap: break-word;
        font-size: 14px;
        line-height: 1.4;
      }

      .bubble.user { align-self: flex-end; background: var(--primary); color: #fff; }
      .bubble.assistant { align-self: flex-start; background: #fff; border: 1px solid var(--border); color: #202223; }
      .bubble.loading { font-style: italic; opacity: .7; }

      .input-row { display: flex; gap: 8px; }

      textarea {
        flex: 1;
        resize: none;
        padding: 10px 12px;
        border: 1px solid var(--border);
        border-radius: 8px;
        font: inherit;
      }

      button {
        padding: 10px 16px;
        border-radius: 8px;
        border: 1px solid var(--primary);
        background: var(--primary);
        color: #fff;
        cursor: pointer;
        font-weight: 500;
      }

      button.secondary { background: transparent; color: var(--primary); font-size: 13px; padding: 6px 10px; }
      button:disabled { opacity: .5; cursor: not-allowed; }

      .quick-actions { display: flex; gap: 8px; flex-wrap: wrap; }
    </style>
  </head>
  <body>
    <div class="panel">
      <header>
        <h1>💬 Shopping Assistant</h1>
        <span id="status" class="status">Connecting...</span>
      </header>

      <div id="messages" class="messages">
        <div id="welcome" class="welcome">
          <p>Welcome! I'm your shopping assistant. Ask me about products, add items to your cart, or get help with your orders.</p>
          <p>Try saying: "Show me running shoes" or "I'm looking for a winter jacket"</p>
        </div>
      </div>

      <div class="input-row">
        <textarea id="input" rows="2" placeholder="Type your message here..." autocomplete="off"></textarea>
        <button id="send" disabled>Send</button>
      </div>

      <div class="quick-actions">
        <button class="secondary" data-prompt="Show me popular products">🔍 Browse Products</button>
        <button class="secondary" data-prompt="Show me my cart">🛒 View Cart</button>
        <button class="secondary" data-prompt="Help me checkout">💳 Checkout Help</button>
      </div>
    </div>

    <script>
      const CONFIG = __CONFIG__;
      const state = { token: null, sessionId: null, busy: false };

      const messagesEl = document.getElementById("messages");
      const inputEl = document.getElementById("input");
      const sendEl = document.getElementById("send");
      const statusEl = document.getElementById("status");

      function setStatus(text, isError) {
        statusEl.textContent = text;
        statusEl.classList.toggle("error", !!isError);
      }

      function addBubble(role, text, extraClass) {
        const welcome = document.getElementById("welcome");
        if (welcome) welcome.remove();

        const el = document.createElement("div");
        el.className = "bubble " + role + (extraClass ? " " + extraClass : "");
        el.textContent = text;
        messagesEl.appendChild(el);
        messagesEl.scrollTop = messagesEl.scrollHeight;
        return el;
      }

      function setBusy(busy) {
        state.busy = busy;
        sendEl.disabled = busy || !state.token || !inputEl.value.trim();
      }

      async function authenticate() {
        const storedSession = window.sessionStorage.getItem("shopbot_session");
        const nonce = (window.crypto && crypto.randomUUID) ? crypto.randomUUID() : String(Date.now());
        const res = await fetch("/widget/authenticate", {
          method: "POST",
          headers: { "Content-Type": "application/json" },
          body: JSON.stringify({ shop: CONFIG.shop, nonce: nonce, session_id: storedSession })
        });
        const data = await res.json();
        if (!res.ok) throw new Error(data.message || data.error || "Authentication failed");

        state.token = data.token;
        state.sessionId = data.session_id;
        window.sessionStorage.setItem("shopbot_session", data.session_id);
        setStatus("Online");
        setBusy(false);
      }

      async function sendMessage() {
        const text = inputEl.value.trim();
        if (!text || state.busy || !state.token) return;

        addBubble("user", text);
        const loading = addBubble("assistant", "Thinking...", "loading");
        inputEl.value = "";
        setBusy(true);

        try {
          const res = await fetch("/api/chat", {
            method: "POST",
            headers: {
              "Content-Type": "application/json",
              "Authorization": "Bearer " + state.token
            },
            body: JSON.stringify({ message: text, sessionId: state.sessionId })
          });
          const data = await res.json();
          loading.remove();

          if (data.success && data.response) {
            addBubble("assistant", data.response);
          } else {
            addBubble("assistant", "Sorry, I encountered an error: " + (data.error || data.message || "unknown error"));
          }
        } catch (err) {
          loading.remove();
          addBubble("assistant", "Sorry, I encountered an error: " + err.message);
        } finally {
          setBusy(false);
        }
      }

      sendEl.addEventListener("click", sendMessage);
      inputEl.addEventListener("input", () => setBusy(state.busy));
      inputEl.addEventListener("keydown", (e) => {
        if (e.key === "Enter" && !e.shiftKey) {
          e.preventDefault();
          sendMessage();
        }
      });

      document.querySelectorAll("[data-prompt]").forEach((btn) => {
        btn.addEventListener("click", () => {
          inputEl.value = btn.getAttribute("data-prompt");
          inputEl.focus();
          setBusy(state.busy);
        });
      });

      authenticate().catch((err) => setStatus(err.message, true));
    </script>
  </body>
</html>
"""
