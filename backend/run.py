from dartscore import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # Use SocketIO server so scoreboards get live updates in dev
    socketio.run(app, debug=True)
