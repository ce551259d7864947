import threading
import tkinter as tk
from tkinter import messagebox, scrolledtext
from typing import Optional, Tuple

from chat_core.api.service import create_transcript_client, get_clients
from chat_core.client.transcript import TranscriptClient
from chat_core.domain.models import Identity, Turn
from chat_core.domain.session import SessionState, SessionStatus


class App:
    def __init__(self, root):
        self.root = root
        self.root.title("Arun Chat Bot")
        self.clients = get_clients()
        self.auth = self.clients.auth
        self.chat_client: Optional[TranscriptClient] = None
        self.is_login_view = True
        self.frame: Optional[tk.Frame] = None
        self.auth.tracker.subscribe(lambda state: self.root.after(0, lambda: self.on_session(state)))
        self.show_loading()
        self.auth.initial_session()

    # ---- 视图切换 ----

    def _replace_frame(self) -> tk.Frame:
        if self.frame is not None:
            self.frame.destroy()
        self.frame = tk.Frame(self.root)
        self.frame.pack(fill=tk.BOTH, expand=True)
        return self.frame

    def on_session(self, state: SessionState):
        if state.status == SessionStatus.LOADING:
            self.show_loading()
        elif state.status == SessionStatus.AUTHENTICATED and state.identity:
            self.show_chat(state.identity)
        else:
            self.chat_client = None
            self.show_auth()

    def show_loading(self):
        frame = self._replace_frame()
        tk.Label(frame, text="Loading...").pack(expand=True)

    def show_auth(self):
        frame = self._replace_frame()
        title = "Welcome Back!" if self.is_login_view else "Join Arun Chat Bot"
        tk.Label(frame, text=title).pack(pady=8)
        self.email_entry = self._mk_labeled_entry(frame, "Email")
        self.password_entry = self._mk_labeled_entry(frame, "Password", show="*")
        self.auth_error = tk.Label(frame, text="", fg="#d93025")
        self.auth_error.pack()
        self.auth_btn = tk.Button(frame, text="Login" if self.is_login_view else "Sign Up", command=self.on_auth_submit)
        self.auth_btn.pack(pady=4)
        switch = "Don't have an account? Sign Up" if self.is_login_view else "Already have an account? Login"
        tk.Button(frame, text=switch, relief=tk.FLAT, command=self.on_switch_form).pack()

    def show_chat(self, identity: Identity):
        frame = self._replace_frame()
        header = tk.Frame(frame)
        header.pack(fill=tk.X)
        tk.Label(header, text="Arun Chat Bot").pack(side=tk.LEFT)
        tk.Button(header, text="Logout", command=self.on_logout).pack(side=tk.RIGHT)
        self.chat = scrolledtext.ScrolledText(frame, width=80, height=24, wrap=tk.WORD)
        self.chat.pack(fill=tk.BOTH, expand=True)
        self.chat.tag_config("user", foreground="#1a73e8")
        self.chat.tag_config("model", foreground="#34a853")
        self.chat.tag_config("system", foreground="#5f6368")
        footer = tk.Frame(frame)
        footer.pack(fill=tk.X)
        self.entry = tk.Entry(footer)
        self.entry.pack(side=tk.LEFT, fill=tk.X, expand=True)
        self.entry.bind("<Return>", self.on_send_event)
        self.send_btn = tk.Button(footer, text="Send", command=self.on_send)
        self.send_btn.pack(side=tk.LEFT)

        self.chat_client = create_transcript_client(identity)
        self.chat_client.subscribe(lambda snap: self.root.after(0, lambda: self.render(snap)))
        client = self.chat_client
        threading.Thread(target=client.load, daemon=True).start()

    def _mk_labeled_entry(self, parent, label, show=None):
        fr = tk.Frame(parent)
        fr.pack(fill=tk.X, padx=16, pady=2)
        tk.Label(fr, text=label, width=10, anchor=tk.W).pack(side=tk.LEFT)
        ent = tk.Entry(fr, show=show) if show else tk.Entry(fr)
        ent.pack(side=tk.LEFT, fill=tk.X, expand=True)
        return ent

    # ---- 登录 ----

    def on_switch_form(self):
        self.is_login_view = not self.is_login_view
        self.show_auth()

    def on_auth_submit(self):
        email = self.email_entry.get().strip()
        password = self.password_entry.get()
        self.auth_btn.config(state=tk.DISABLED, text="Processing...")
        self.auth_error.config(text="")
        login = self.is_login_view

        def worker():
            try:
                if login:
                    self.auth.sign_in_with_password(email, password)
                else:
                    self.auth.sign_up(email, password)
                    self.root.after(0, self.on_signed_up)
            except Exception as e:
                msg = str(e)
                self.root.after(0, lambda: self.on_auth_error(msg))

        threading.Thread(target=worker, daemon=True).start()

    def on_signed_up(self):
        messagebox.showinfo("Sign Up", "Signup successful! Please login.")
        self.is_login_view = True
        self.show_auth()

    def on_auth_error(self, msg: str):
        if not self.auth_btn.winfo_exists():
            return
        self.auth_error.config(text=msg)
        self.auth_btn.config(state=tk.NORMAL, text="Login" if self.is_login_view else "Sign Up")

    def on_logout(self):
        threading.Thread(target=self.auth.sign_out, daemon=True).start()

    # ---- 对话 ----

    def on_send(self):
        client = self.chat_client
        if client is None or client.is_busy:
            return
        text = self.entry.get()
        if not text.strip():
            return
        self.entry.delete(0, tk.END)
        self.send_btn.config(state=tk.DISABLED)
        self.entry.config(state=tk.DISABLED)

        def worker():
            client.send(text)
            self.root.after(0, lambda: self.on_send_done(client))

        threading.Thread(target=worker, daemon=True).start()

    def on_send_event(self, event):
        self.on_send()
        return "break"

    def on_send_done(self, client: TranscriptClient):
        if client is not self.chat_client:
            return
        self.send_btn.config(state=tk.NORMAL)
        self.entry.config(state=tk.NORMAL)
        self.render(client.snapshot())

    def render(self, snapshot: Tuple[Turn, ...]):
        client = self.chat_client
        if client is None or not self.chat.winfo_exists():
            return
        self.chat.delete(1.0, tk.END)
        label = client.identity.display_label
        for turn in snapshot:
            who = label if turn.role == "user" else "Arun"
            self.chat.insert(tk.END, f"{who}: {turn.text}\n\n", turn.role)
        if client.awaiting_first_chunk:
            self.chat.insert(tk.END, "Arun is typing...\n", "system")
        self.chat.see(tk.END)


def main() -> None:
    root = tk.Tk()
    App(root)
    root.mainloop()


if __name__ == "__main__":
    main()
